"""Test configuration and shared fixtures."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List

import pytest
import yaml

from fprov.foundation.config import ProvisioningConfig
from fprov.services.provisioning import metrics
from fprov.services.provisioning.auth import Subject
from fprov.services.provisioning.resolvers import MemoryResolver
from fprov.services.provisioning.runtime import InMemoryModuleRuntime
from fprov.services.provisioning.service import FeaturesService, build_service

RepoFactory = Callable[..., str]


@pytest.fixture(autouse=True)
def _reset_provisioning_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def resolver() -> MemoryResolver:
    return MemoryResolver()


@pytest.fixture
def runtime() -> InMemoryModuleRuntime:
    return InMemoryModuleRuntime()


@pytest.fixture
def make_repo(resolver: MemoryResolver) -> RepoFactory:
    """Register a descriptor in the in-memory resolver and return its locator."""

    def _make(
        locator: str,
        features: Iterable[Dict[str, Any]],
        *,
        name: str | None = None,
        imports: Iterable[str] = (),
    ) -> str:
        doc: Dict[str, Any] = {}
        if name is not None:
            doc["name"] = name
        imported: List[str] = list(imports)
        if imported:
            doc["repositories"] = imported
        doc["features"] = list(features)
        resolver.put(locator, yaml.safe_dump(doc, sort_keys=False))
        return locator

    return _make


@pytest.fixture
def provisioning_config(tmp_path) -> ProvisioningConfig:
    return ProvisioningConfig(
        state_file=None,
        config_dir=str(tmp_path / "etc"),
        admin_roles=["admin"],
    )


@pytest.fixture
def service(
    provisioning_config: ProvisioningConfig,
    resolver: MemoryResolver,
    runtime: InMemoryModuleRuntime,
) -> FeaturesService:
    return build_service(provisioning_config, resolver=resolver, runtime=runtime)


@pytest.fixture
def admin() -> Subject:
    return Subject.of("tester", ["admin"])


@pytest.fixture
def viewer() -> Subject:
    return Subject.of("guest", ["viewer"])
