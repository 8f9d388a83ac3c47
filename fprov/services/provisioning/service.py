"""Typed management boundary over the provisioning engine.

Front ends talk to :class:`FeaturesService` only. Every mutating method takes
the calling :class:`~fprov.services.provisioning.auth.Subject`, checks it
against the authorization policy and then delegates to the repository store
or the lifecycle.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from fprov.foundation.config import ProvisioningConfig

from . import metrics
from .auth import AuthorizationPolicy, Subject
from .catalog import CatalogEntry, FeatureCatalog
from .config_manager import ConfigLifecycleManager
from .dependencies import DependencyResolver
from .errors import InUseError, ProvisioningError, RepositoryBatchError
from .lifecycle import FeatureLifecycle
from .models import FeatureState, OperationReport, Repository
from .repository_store import RepositoryStore
from .resolvers import LocatorResolver, default_resolver
from .runtime import InMemoryModuleRuntime, ModuleRuntime, load_module_runtime
from .state import FeatureStateStore

logger = logging.getLogger(__name__)

__all__ = ["FeaturesService", "build_service"]


class FeaturesService:
    def __init__(
        self,
        repositories: RepositoryStore,
        catalog: FeatureCatalog,
        lifecycle: FeatureLifecycle,
        states: FeatureStateStore,
        policy: AuthorizationPolicy | None = None,
        *,
        configured_repositories: Sequence[str] = (),
        boot_features: Sequence[str] = (),
    ) -> None:
        self.repositories = repositories
        self.catalog = catalog
        self.lifecycle = lifecycle
        self.states = states
        self.policy = policy or AuthorizationPolicy()
        self.configured_repositories = list(configured_repositories)
        self.boot_features = list(boot_features)

    # repositories ----------------------------------------------------------------
    def _persist_repositories(self) -> None:
        self.states.set_repositories(self.repositories.locators())

    def add_repository(
        self, subject: Subject, locator: str, *, install: bool = False
    ) -> List[Repository]:
        """Register ``locator`` and its imports.

        With ``install`` the boot features of the added repositories are
        installed right away.
        """

        self.policy.require(subject, "add repositories")
        try:
            added = self.repositories.add(locator)
        except ProvisioningError:
            metrics.record_repository_operation("add", "failure")
            raise
        metrics.record_repository_operation("add", "success")
        self._persist_repositories()
        if install and added:
            report = self.lifecycle.install_boot_features(
                repositories=[repo.locator for repo in added]
            )
            if not report.installed:
                logger.info("Repository %s adds no boot features to install", locator)
        return added

    def remove_repository(
        self, subject: Subject, selector: str, *, force: bool = False
    ) -> List[Repository]:
        """Remove the repositories matched by ``selector``.

        Without ``force`` the call is rejected while any matched repository
        has installed features. With ``force`` those features, and the
        required features depending on them, are uninstalled first.

        Raises:
            NotFoundError: If nothing matches.
            InUseError: If features are installed and ``force`` is not set.
        """

        self.policy.require(subject, "remove repositories")
        with self.lifecycle.lock:
            try:
                matched = self.repositories.match(selector)
                locators = [repo.locator for repo in matched]
                in_use = [r for r in self.states.installed() if r.repository in locators]
                if in_use and not force:
                    names = ", ".join(sorted(r.feature.id for r in in_use))
                    raise InUseError(
                        f"Repository {selector} provides installed features: {names}",
                        dependents=[r.feature.id for r in in_use],
                    )
                if in_use:
                    self.lifecycle.uninstall_from_repositories(locators)
                removed = self.repositories.remove(locators)
            except ProvisioningError:
                metrics.record_repository_operation("remove", "failure")
                raise
            metrics.record_repository_operation("remove", "success")
            self._persist_repositories()
            return removed

    def refresh_repository(self, subject: Subject, selector: str) -> List[Repository]:
        """Re-fetch every repository matched by ``selector``.

        Installed features keep their state. Repositories that fail keep
        their previous definition and are reported together.

        Raises:
            RepositoryBatchError: If at least one repository failed.
        """

        self.policy.require(subject, "refresh repositories")
        try:
            matched = self.repositories.match(selector)
        except ProvisioningError:
            metrics.record_repository_operation("refresh", "failure")
            raise
        refreshed, failures = self.repositories.refresh(matched)
        self._persist_repositories()
        if failures:
            metrics.record_repository_operation("refresh", "failure")
            raise RepositoryBatchError(
                "refresh", failures, completed=[repo.locator for repo in refreshed]
            )
        metrics.record_repository_operation("refresh", "success")
        return refreshed

    def list_repositories(self) -> List[Repository]:
        return self.repositories.list()

    # features ----------------------------------------------------------------------
    def install_feature(
        self,
        subject: Subject,
        refs: Sequence[str],
        *,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        self.policy.require(subject, "install features")
        return self.lifecycle.install(refs, no_auto_refresh=no_auto_refresh, verbose=verbose)

    def uninstall_feature(
        self,
        subject: Subject,
        refs: Sequence[str],
        *,
        delete_config: bool = False,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        self.policy.require(subject, "uninstall features")
        return self.lifecycle.uninstall(
            refs, delete_config=delete_config, no_auto_refresh=no_auto_refresh, verbose=verbose
        )

    def upgrade_feature(
        self,
        subject: Subject,
        refs: Sequence[str],
        *,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        self.policy.require(subject, "upgrade features")
        return self.lifecycle.upgrade(refs, no_auto_refresh=no_auto_refresh, verbose=verbose)

    def list_features(
        self, *, installed_only: bool = False, repository: str | None = None
    ) -> List[CatalogEntry]:
        return self.catalog.list(installed_only=installed_only, repository=repository)

    def version_list(self, selector: str) -> List[CatalogEntry]:
        return self.catalog.versions(selector)

    def feature_status(self, ref: str) -> FeatureState:
        return self.lifecycle.status(ref)

    # startup -----------------------------------------------------------------------
    def load_repositories(self, extra: Iterable[str] = ()) -> List[str]:
        """Register configured and previously persisted repositories.

        Unreachable repositories are logged and skipped. Returns the
        locators that could not be loaded.
        """

        failed: List[str] = []
        wanted = [*self.configured_repositories, *self.states.repositories(), *extra]
        for locator in dict.fromkeys(wanted):
            if self.repositories.contains(locator):
                continue
            try:
                self.repositories.add(locator)
            except ProvisioningError as exc:
                logger.warning("Unable to load repository %s: %s", locator, exc)
                failed.append(locator)
        return failed

    def bootstrap(self, subject: Subject) -> OperationReport:
        """Load repositories and install boot features not yet installed."""

        self.policy.require(subject, "bootstrap")
        self.load_repositories()
        self._persist_repositories()
        return self.lifecycle.install_boot_features(self.boot_features)


def build_service(
    config: ProvisioningConfig,
    *,
    resolver: LocatorResolver | None = None,
    runtime: ModuleRuntime | None = None,
) -> FeaturesService:
    """Assemble a :class:`FeaturesService` from ``config``."""

    states = FeatureStateStore(config.state_file)
    if resolver is None:
        resolver = default_resolver(
            http_timeout=config.http_timeout_seconds,
            maven_roots=config.maven_repositories,
        )
    if runtime is None:
        if config.module_runtime:
            runtime = load_module_runtime(config.module_runtime)
        else:
            runtime = InMemoryModuleRuntime(started=states.started_modules())
    repositories = RepositoryStore(resolver)
    catalog = FeatureCatalog(repositories, states)
    lifecycle = FeatureLifecycle(
        catalog,
        states,
        runtime,
        ConfigLifecycleManager(config.config_dir),
        DependencyResolver(allow_side_by_side=config.allow_side_by_side),
        retain_uninstalled_records=config.retain_uninstalled_records,
        auto_refresh=config.auto_refresh,
    )
    return FeaturesService(
        repositories,
        catalog,
        lifecycle,
        states,
        AuthorizationPolicy(config.admin_roles),
        configured_repositories=config.repositories,
        boot_features=config.boot_features,
    )
