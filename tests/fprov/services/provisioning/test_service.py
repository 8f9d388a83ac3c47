"""Tests for the FeaturesService management boundary."""

from __future__ import annotations

import pytest

from fprov.foundation.common.metrics_factory import get_metric_value
from fprov.services.provisioning import metrics
from fprov.services.provisioning.errors import (
    AuthorizationError,
    FetchError,
    InUseError,
    NotFoundError,
    RepositoryBatchError,
)
from fprov.services.provisioning.models import FeatureState
from fprov.services.provisioning.service import build_service

CELLAR = "mvn:org.apache.karaf.cellar/apache-karaf-cellar/3.0.0/xml/features"
WEB = "mvn:org.example/web-features/1.0/xml/features"


@pytest.fixture
def repos(make_repo):
    make_repo(
        CELLAR,
        [
            {"name": "cellar-core", "version": "3.0.0", "modules": ["m:cellar-core"], "dependencies": ["web"]},
            {"name": "cellar", "version": "3.0.0", "modules": ["m:cellar"], "dependencies": ["cellar-core"]},
        ],
    )
    make_repo(
        WEB,
        [
            {"name": "web", "version": "1.0", "modules": ["m:web"], "boot": True},
            {"name": "webconsole", "version": "1.0", "modules": ["m:webconsole"], "dependencies": ["web"]},
        ],
    )
    return [CELLAR, WEB]


def test_add_repository_with_install_runs_boot_features(service, admin, repos):
    added = service.add_repository(admin, WEB, install=True)

    assert [r.name for r in added] == ["web-features-1.0"]
    assert service.feature_status("web") is FeatureState.STARTED
    assert service.feature_status("webconsole") is FeatureState.UNINSTALLED
    assert service.states.repositories() == [WEB]


def test_add_repository_installs_newest_boot_version_of_added_repository(
    service, admin, repos, make_repo
):
    service.add_repository(admin, WEB)
    apps = make_repo(
        "mem:apps",
        [
            {"name": "app", "version": "1.0", "modules": ["m:app1"], "boot": True},
            {"name": "app", "version": "2.0", "modules": ["m:app2"], "boot": True},
        ],
    )

    service.add_repository(admin, apps, install=True)

    assert service.feature_status("app/2.0") is FeatureState.STARTED
    assert service.feature_status("app/1.0") is FeatureState.UNINSTALLED
    assert service.feature_status("web") is FeatureState.UNINSTALLED


def test_unforced_remove_rejects_when_features_installed(service, admin, repos):
    service.add_repository(admin, WEB)
    service.add_repository(admin, CELLAR)
    service.install_feature(admin, ["cellar"])

    with pytest.raises(InUseError):
        service.remove_repository(admin, ".*apache-karaf-cellar.*")

    assert [r.locator for r in service.list_repositories()] == [WEB, CELLAR]
    assert service.feature_status("cellar") is FeatureState.STARTED


def test_forced_remove_cascades(service, admin, repos, runtime):
    service.add_repository(admin, WEB)
    service.add_repository(admin, CELLAR)
    service.install_feature(admin, ["cellar"])
    service.install_feature(admin, ["webconsole"])

    removed = service.remove_repository(admin, ".*apache-karaf-cellar.*", force=True)

    assert [r.locator for r in removed] == [CELLAR]
    assert [r.locator for r in service.list_repositories()] == [WEB]
    assert service.feature_status("cellar") is FeatureState.UNINSTALLED
    assert service.feature_status("cellar-core") is FeatureState.UNINSTALLED
    assert service.feature_status("webconsole") is FeatureState.STARTED
    assert service.feature_status("web") is FeatureState.STARTED
    assert "m:cellar" not in runtime.started()


def test_forced_remove_cascades_to_dependents_in_other_repositories(service, admin, repos):
    service.add_repository(admin, WEB)
    service.add_repository(admin, CELLAR)
    service.install_feature(admin, ["cellar"])

    service.remove_repository(admin, WEB, force=True)

    assert service.feature_status("web") is FeatureState.UNINSTALLED
    assert service.feature_status("cellar") is FeatureState.UNINSTALLED


def test_remove_without_installed_features(service, admin, repos):
    service.add_repository(admin, WEB)
    removed = service.remove_repository(admin, "web-features-1.0")
    assert [r.locator for r in removed] == [WEB]
    assert service.states.repositories() == []
    with pytest.raises(NotFoundError):
        service.remove_repository(admin, "web-features-1.0")


def test_refresh_reports_broken_repositories(service, admin, repos, resolver, make_repo):
    service.add_repository(admin, WEB)
    service.add_repository(admin, CELLAR)
    service.install_feature(admin, ["web"])
    make_repo(WEB, [{"name": "web", "version": "1.0"}, {"name": "web", "version": "2.0"}])
    resolver.remove(CELLAR)

    with pytest.raises(RepositoryBatchError) as exc:
        service.refresh_repository(admin, "mvn:.*")

    assert list(exc.value.failures) == [CELLAR]
    assert isinstance(exc.value.failures[CELLAR], FetchError)
    assert exc.value.completed == [WEB]
    assert [e.feature.version for e in service.version_list("web")] == ["2.0", "1.0"]
    assert service.feature_status("web/1.0") is FeatureState.STARTED
    assert {e.feature.name for e in service.list_features(repository=CELLAR)} == {"cellar", "cellar-core"}


def test_mutations_require_admin_role(service, admin, viewer, repos):
    service.add_repository(admin, WEB)

    with pytest.raises(AuthorizationError):
        service.install_feature(viewer, ["web"])
    with pytest.raises(AuthorizationError):
        service.add_repository(viewer, CELLAR)
    with pytest.raises(AuthorizationError):
        service.remove_repository(viewer, WEB, force=True)

    assert service.feature_status("web") is FeatureState.UNINSTALLED
    assert [r.locator for r in service.list_repositories()] == [WEB]
    assert [e.feature.name for e in service.list_features()] == ["web", "webconsole"]


def test_state_persists_across_instances(tmp_path, provisioning_config, resolver, runtime, admin, repos):
    provisioning_config.state_file = str(tmp_path / "state.json")
    first = build_service(provisioning_config, resolver=resolver, runtime=runtime)
    first.add_repository(admin, WEB)
    first.install_feature(admin, ["webconsole"])

    second = build_service(provisioning_config, resolver=resolver)
    assert second.load_repositories() == []
    assert [r.locator for r in second.list_repositories()] == [WEB]
    assert second.feature_status("webconsole") is FeatureState.STARTED
    assert second.lifecycle.runtime.started() == ["m:web", "m:webconsole"]

    second.uninstall_feature(admin, ["webconsole"])
    assert second.feature_status("web") is FeatureState.UNINSTALLED


def test_bootstrap_installs_configured_boot_features(provisioning_config, resolver, runtime, admin, repos):
    provisioning_config.repositories = [CELLAR, "mem:unreachable"]
    provisioning_config.boot_features = ["cellar-core"]
    service = build_service(provisioning_config, resolver=resolver, runtime=runtime)
    service.configured_repositories.insert(0, WEB)

    report = service.bootstrap(admin)

    assert sorted(report.installed) == ["cellar-core/3.0.0", "web/1.0"]
    assert service.states.repositories() == [WEB, CELLAR]


def test_operation_metrics(service, admin, viewer, repos):
    service.add_repository(admin, WEB)
    service.install_feature(admin, ["webconsole"])
    with pytest.raises(NotFoundError):
        service.install_feature(admin, ["missing"])

    ops = metrics.feature_operations_total
    assert get_metric_value(ops, {"operation": "install", "outcome": "success"}) == 1
    assert get_metric_value(ops, {"operation": "install", "outcome": "failure"}) == 1
    assert get_metric_value(
        metrics.repository_operations_total, {"operation": "add", "outcome": "success"}
    ) == 1
    assert get_metric_value(metrics.installed_features) == 2
    assert get_metric_value(metrics.started_modules) == 2
