"""Feature lifecycle state machine and provisioning runs.

Every mutating request is turned into a *target set of required features*.
The dependency resolver expands that set into its closure, the closure is
diffed against what is installed, and the diff is applied in two phases:

1. teardown of features (and modules) no longer referenced by anything;
2. bring-up of new features: install modules, materialize configuration,
   start modules.

A module stays up as long as any installed feature owns it. If bring-up
fails, everything it did is undone and the teardown is replayed in reverse
so the engine returns to the state it had before the request.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Iterable, List, Sequence, Set

import networkx as nx

from . import metrics
from .catalog import FeatureCatalog
from .config_manager import ConfigLifecycleManager
from .dependencies import DependencyResolver, InstallationPlan
from .errors import (
    InUseError,
    ModuleActivationError,
    NotInstalledError,
    ProvisioningError,
    TransitionError,
    UpgradeFailedError,
    VersionConflictError,
)
from .models import (
    ConfigArtifact,
    Feature,
    FeatureKey,
    FeatureRef,
    FeatureState,
    InstalledFeatureRecord,
    OperationReport,
)
from .runtime import ModuleRuntime
from .state import FeatureStateStore
from .versions import Version

logger = logging.getLogger(__name__)

__all__ = ["FEATURE_TRANSITIONS", "next_state", "FeatureLifecycle"]


# event -> next state, per current state; UNINSTALL is accepted everywhere
FEATURE_TRANSITIONS: Dict[FeatureState, Dict[str, FeatureState]] = {
    FeatureState.UNINSTALLED: {
        "INSTALL": FeatureState.INSTALLED,
        "UNINSTALL": FeatureState.UNINSTALLED,
    },
    FeatureState.INSTALLED: {
        "RESOLVE": FeatureState.RESOLVED,
        "UNINSTALL": FeatureState.UNINSTALLED,
    },
    FeatureState.RESOLVED: {
        "START": FeatureState.STARTED,
        "UNRESOLVE": FeatureState.INSTALLED,
        "UNINSTALL": FeatureState.UNINSTALLED,
    },
    FeatureState.STARTED: {
        "STOP": FeatureState.RESOLVED,
        "UNRESOLVE": FeatureState.INSTALLED,
        "UNINSTALL": FeatureState.UNINSTALLED,
    },
}


def next_state(state: FeatureState, event: str) -> FeatureState:
    """Return the state a feature in ``state`` reaches on ``event``.

    Raises:
        TransitionError: If ``event`` is not allowed in ``state``.
    """

    try:
        return FEATURE_TRANSITIONS[state][event]
    except KeyError:
        raise TransitionError(
            f"invalid event {event!r} for feature state {state.value!r}"
        ) from None


class _ApplyFailed(Exception):
    """Carries a bring-up failure and whether the prior state came back."""

    def __init__(self, error: ProvisioningError, restored: bool) -> None:
        super().__init__(str(error))
        self.error = error
        self.restored = restored


def _newest_first(features: Iterable[Feature]) -> List[Feature]:
    ordered = sorted(features, key=lambda f: Version.parse(f.version).sort_key())
    ordered.reverse()
    return ordered


class FeatureLifecycle:
    """Applies install/uninstall/upgrade requests.

    A single provisioning lock serializes mutating requests. Runtime calls are
    made while holding only that lock, so catalog listings and status queries
    proceed while modules activate.
    """

    def __init__(
        self,
        catalog: FeatureCatalog,
        states: FeatureStateStore,
        runtime: ModuleRuntime,
        configs: ConfigLifecycleManager,
        resolver: DependencyResolver | None = None,
        *,
        retain_uninstalled_records: bool = True,
        auto_refresh: bool = True,
    ) -> None:
        self.catalog = catalog
        self.states = states
        self.runtime = runtime
        self.configs = configs
        self.resolver = resolver or DependencyResolver()
        self.retain_uninstalled_records = retain_uninstalled_records
        self.auto_refresh = auto_refresh
        self.lock = threading.RLock()

    # queries -------------------------------------------------------------------
    def status(self, ref: str | FeatureRef) -> FeatureState:
        """State of the feature addressed by ``ref``; ``Uninstalled`` when untracked."""

        if isinstance(ref, str):
            ref = FeatureRef.parse(ref)
        tracked = [r for r in self.states.records() if ref.matches(r.key)]
        if not tracked:
            return FeatureState.UNINSTALLED
        installed = [r for r in tracked if r.installed] or tracked
        installed.sort(key=lambda r: Version.parse(r.key.version).sort_key())
        return installed[-1].state

    # public operations -----------------------------------------------------------
    def install(
        self,
        refs: Sequence[str | FeatureRef],
        *,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        """Install the referenced features and everything they depend on."""

        with self.lock:
            try:
                features = [self.catalog.resolve(ref) for ref in refs]
                required = set(self.states.required_keys())
                for feature in features:
                    record = self.states.get(feature.key)
                    if record is not None and record.installed:
                        logger.info("Feature %s is already installed", feature.id)
                    required.add(feature.key)
                plan = self._plan(required, extra=features)
                report = self._run(
                    plan,
                    required,
                    delete_config=False,
                    refresh=self.auto_refresh and not no_auto_refresh,
                    verbose=verbose,
                )
            except _ApplyFailed as failure:
                metrics.record_feature_operation("install", "failure")
                raise failure.error from failure.error.__cause__
            except ProvisioningError:
                metrics.record_feature_operation("install", "failure")
                raise
            metrics.record_feature_operation("install", "success")
            return report

    def uninstall(
        self,
        refs: Sequence[str | FeatureRef],
        *,
        delete_config: bool = False,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        """Uninstall explicitly installed features.

        Dependencies no other installed feature needs are removed with them.
        Configuration is retained unless ``delete_config`` is set.
        """

        with self.lock:
            try:
                keys = [self._installed_key(ref) for ref in refs]
                for key in keys:
                    record = self.states.get(key)
                    if record is not None and not record.required:
                        dependents = self._dependents(key)
                        raise InUseError(
                            f"Feature {key} is installed as a dependency of "
                            f"{', '.join(str(d) for d in dependents)}",
                            dependents=[str(d) for d in dependents],
                        )
                required = set(self.states.required_keys()) - set(keys)
                plan = self._plan(required, installed_only=True)
                report = self._run(
                    plan,
                    required,
                    delete_config=delete_config,
                    refresh=self.auto_refresh and not no_auto_refresh,
                    verbose=verbose,
                )
            except _ApplyFailed as failure:
                metrics.record_feature_operation("uninstall", "failure")
                raise failure.error from failure.error.__cause__
            except ProvisioningError:
                metrics.record_feature_operation("uninstall", "failure")
                raise
            metrics.record_feature_operation("uninstall", "success")
            return report

    def upgrade(
        self,
        refs: Sequence[str | FeatureRef],
        *,
        no_auto_refresh: bool = False,
        verbose: bool = False,
    ) -> OperationReport:
        """Replace installed versions with the requested (or highest) ones.

        Features that are not installed yet are simply installed. On failure
        the previous versions are restored when possible.

        Raises:
            UpgradeFailedError: If the new versions could not be started.
        """

        with self.lock:
            try:
                targets = [self.catalog.resolve(ref) for ref in refs]
                required = set(self.states.required_keys())
                replaced: Set[FeatureKey] = set()
                for target in targets:
                    for record in self.states.installed_named(target.name):
                        if record.key == target.key:
                            continue
                        replaced.add(record.key)
                        required.discard(record.key)
                        logger.info("Upgrading feature %s to %s", record.key, target.id)
                    required.add(target.key)
                upgraded_names = {t.name for t in targets}
                plan = self._plan(required, extra=targets, avoid=upgraded_names)
                report = self._run(
                    plan,
                    required,
                    delete_config=False,
                    refresh=self.auto_refresh and not no_auto_refresh,
                    verbose=verbose,
                )
            except _ApplyFailed as failure:
                metrics.record_feature_operation("upgrade", "failure")
                names = ", ".join(str(ref) for ref in refs)
                if failure.restored:
                    message = f"Upgrade of {names} failed; previous versions restored: {failure.error}"
                else:
                    message = f"Upgrade of {names} failed and could not be rolled back: {failure.error}"
                logger.error(message)
                raise UpgradeFailedError(
                    message, rolled_back=failure.restored, cause=failure.error
                ) from failure.error
            except ProvisioningError:
                metrics.record_feature_operation("upgrade", "failure")
                raise
            metrics.record_feature_operation("upgrade", "success")
            return report

    def install_boot_features(
        self,
        extra: Iterable[str] = (),
        *,
        repositories: Iterable[str] | None = None,
        no_auto_refresh: bool = False,
    ) -> OperationReport:
        """Install boot-flagged features and ``extra`` references not yet installed.

        Only the newest boot version of each name is installed. With
        ``repositories`` only boot features sourced from those locators count.
        """

        sources = set(repositories) if repositories is not None else None
        with self.lock:
            newest: Dict[str, Feature] = {}
            for feature in _newest_first(self.catalog.boot_features()):
                if sources is not None and feature.repository not in sources:
                    continue
                newest.setdefault(feature.name, feature)
            refs = [feature.id for feature in newest.values()]
            refs.extend(extra)
            pending = [
                ref
                for ref in dict.fromkeys(refs)
                if not any(FeatureRef.parse(ref).matches(r.key) for r in self.states.installed())
            ]
            if not pending:
                logger.debug("All boot features are installed")
                return OperationReport()
            logger.info("Installing boot features %s", ", ".join(pending))
            return self.install(pending, no_auto_refresh=no_auto_refresh)

    def uninstall_from_repositories(self, locators: Iterable[str]) -> OperationReport:
        """Uninstall every feature sourced from ``locators`` plus their dependents.

        Configuration is retained.
        """

        wanted = set(locators)
        with self.lock:
            victims = {r.key for r in self.states.installed() if r.repository in wanted}
            if not victims:
                return OperationReport()
            graph = self._installed_graph()
            required = set()
            for key in self.states.required_keys():
                reach = {key} | (nx.descendants(graph, key) if key in graph else set())
                if reach & victims:
                    logger.info("Cascading uninstall of feature %s", key)
                    continue
                required.add(key)
            plan = self._plan(required, installed_only=True)
            try:
                report = self._run(
                    plan, required, delete_config=False, refresh=self.auto_refresh, verbose=False
                )
            except _ApplyFailed as failure:
                metrics.record_feature_operation("uninstall", "failure")
                raise failure.error from failure.error.__cause__
            metrics.record_feature_operation("uninstall", "success")
            return report

    # planning --------------------------------------------------------------------
    def _installed_key(self, ref: str | FeatureRef) -> FeatureKey:
        if isinstance(ref, str):
            ref = FeatureRef.parse(ref)
        matches = [r.key for r in self.states.installed() if ref.matches(r.key)]
        if not matches:
            raise NotInstalledError(f"Feature {ref} is not installed")
        if len(matches) > 1:
            raise VersionConflictError(
                ref.name,
                [k.version for k in matches],
                "installed in several versions; specify one",
            )
        return matches[0]

    def _installed_graph(self) -> nx.DiGraph:
        graph = nx.DiGraph()
        for record in self.states.installed():
            graph.add_node(record.key)
            for dep in record.dependencies:
                graph.add_edge(record.key, dep)
        return graph

    def _dependents(self, key: FeatureKey) -> List[FeatureKey]:
        graph = self._installed_graph()
        if key not in graph:
            return []
        return sorted(nx.ancestors(graph, key), key=lambda k: k.sort_key())

    def _lookup(self, *, installed_only: bool = False, avoid: Set[str] = frozenset()) -> Callable[[FeatureRef], List[Feature]]:
        def lookup(ref: FeatureRef) -> List[Feature]:
            found: Dict[FeatureKey, Feature] = {}
            if not installed_only:
                for feature in self.catalog.candidates(ref):
                    found[feature.key] = feature
            for record in self.states.installed():
                if ref.matches(record.key) and record.feature.name not in avoid:
                    found[record.key] = record.feature
            return _newest_first(found.values())

        return lookup

    def _plan(
        self,
        required: Set[FeatureKey],
        *,
        extra: Sequence[Feature] = (),
        installed_only: bool = False,
        avoid: Set[str] = frozenset(),
    ) -> InstallationPlan:
        known: Dict[FeatureKey, Feature] = {r.key: r.feature for r in self.states.installed()}
        for feature in extra:
            known.setdefault(feature.key, feature)
        roots = sorted((known[key] for key in required), key=lambda f: f.key.sort_key())
        preferred = [r.key for r in self.states.installed() if r.feature.name not in avoid]
        return self.resolver.plan(
            roots,
            self._lookup(installed_only=installed_only, avoid=avoid),
            preferred=preferred,
        )

    # execution -------------------------------------------------------------------
    def _transition(self, key: FeatureKey, event: str) -> None:
        self.states.set_state(key, next_state(self.states.state_of(key), event))

    def _teardown_order(self, keys: Set[FeatureKey]) -> List[FeatureKey]:
        graph = self._installed_graph()
        order = list(nx.lexicographical_topological_sort(graph, key=str))
        return [key for key in order if key in keys]

    def _run(
        self,
        plan: InstallationPlan,
        required: Set[FeatureKey],
        *,
        delete_config: bool,
        refresh: bool,
        verbose: bool,
    ) -> OperationReport:
        say = logger.info if verbose else logger.debug
        report = OperationReport()
        snapshot = self.states.snapshot()
        current = {r.key: r for r in self.states.installed()}
        target = plan.keys()
        needed_modules = set(plan.modules)
        running_modules = set(self.states.module_owners())
        started_modules = set(self.states.started_modules())

        removed = [current[k] for k in self._teardown_order(set(current) - target)]
        added = [f for f in plan.features if f.key not in current]
        # kept features left short of Started by an earlier failed rollback
        resumed = [
            f
            for f in plan.features
            if f.key in current and current[f.key].state is not FeatureState.STARTED
        ]
        to_install = [m for m in plan.modules if m not in running_modules]
        to_start = [m for m in plan.modules if m not in started_modules]
        kept_pids = {spec.pid for f in plan.features for spec in f.configs}

        torn_down = self._teardown(removed, needed_modules, say)
        if torn_down.error is not None:
            restored = self._restore(snapshot, torn_down)
            raise _ApplyFailed(torn_down.error, restored) from torn_down.error
        self._retire(removed, delete_config, kept_pids, report, say)
        report.stopped_modules.extend(torn_down.modules)

        try:
            self._bring_up(added, resumed, to_install, to_start, report, say)
        except ModuleActivationError as exc:
            restored = self._restore(snapshot, torn_down)
            raise _ApplyFailed(exc, restored) from exc

        for feature in plan.features:
            record = self.states.get(feature.key)
            if record is None:
                continue
            record.required = feature.key in required
            record.dependencies = plan.dependencies_of(feature.key)
            self.states.put(record)

        if refresh:
            shared = [
                m for f in added for m in f.modules if m in running_modules and m in needed_modules
            ]
            shared = list(dict.fromkeys(shared))
            if shared:
                say("Refreshing modules %s", ", ".join(shared))
                self.runtime.refresh(shared)
                report.refreshed_modules.extend(shared)

        self._update_gauges()
        return report

    def _teardown(
        self,
        removed: List[InstalledFeatureRecord],
        needed_modules: Set[str],
        say: Callable[..., None],
    ) -> "_Teardown":
        """Stop and uninstall the modules only ``removed`` features own.

        Stops at the first runtime failure; nothing is committed to the state
        store here.
        """

        result = _Teardown()
        doomed: List[str] = []
        for record in removed:
            for module in reversed(record.feature.modules):
                if module not in needed_modules and module not in doomed:
                    doomed.append(module)
        for module in doomed:
            say("Stopping module %s", module)
            try:
                self.runtime.stop(module)
            except Exception as exc:
                logger.error("Failed to stop module %s: %s", module, exc)
                result.error = ModuleActivationError(module, "stop", exc)
                return result
            result.stopped.append(module)
        for module in doomed:
            say("Uninstalling module %s", module)
            try:
                self.runtime.uninstall(module)
            except Exception as exc:
                logger.error("Failed to uninstall module %s: %s", module, exc)
                result.error = ModuleActivationError(module, "uninstall", exc)
                return result
            result.modules.append(module)
        return result

    def _retire(
        self,
        removed: List[InstalledFeatureRecord],
        delete_config: bool,
        kept_pids: Set[str],
        report: OperationReport,
        say: Callable[..., None],
    ) -> None:
        for record in removed:
            self._transition(record.key, "UNINSTALL")
            current = self.states.get(record.key)
            if current is not None:
                current.required = False
                current.dependencies = []
                self.states.put(current)
            report.deleted_configs.extend(
                self.configs.retain_or_delete(record.feature, delete_config, keep=kept_pids)
            )
            if not self.retain_uninstalled_records:
                self.states.drop(record.key)
            report.uninstalled.append(record.feature.id)
            say("Uninstalled feature %s", record.feature.id)

    def _bring_up(
        self,
        added: List[Feature],
        resumed: List[Feature],
        to_install: List[str],
        to_start: List[str],
        report: OperationReport,
        say: Callable[..., None],
    ) -> None:
        installed_modules: List[str] = []
        started_modules: List[str] = []
        created: List[ConfigArtifact] = []
        pending = [*added, *resumed]
        try:
            for feature in added:
                existing = self.states.get(feature.key)
                if existing is None or existing.feature != feature:
                    record = InstalledFeatureRecord(
                        feature=feature,
                        state=FeatureState.UNINSTALLED,
                        configs=existing.configs if existing is not None else [],
                    )
                    self.states.put(record)

            for module in to_install:
                say("Installing module %s", module)
                try:
                    self.runtime.install(module)
                except Exception as exc:
                    logger.error("Failed to install module %s: %s", module, exc)
                    raise ModuleActivationError(module, "install", exc) from exc
                installed_modules.append(module)
            for feature in added:
                self._transition(feature.key, "INSTALL")

            for feature in pending:
                if self.states.state_of(feature.key) is not FeatureState.INSTALLED:
                    continue
                try:
                    artifacts = self.configs.materialize(feature)
                except OSError as exc:
                    logger.error("Failed to write configuration of %s: %s", feature.id, exc)
                    raise ModuleActivationError(feature.id, "configure", exc) from exc
                created.extend(artifacts)
                record = self.states.get(feature.key)
                if record is not None:
                    record.configs = [spec.pid for spec in feature.configs]
                    self.states.put(record)
                self._transition(feature.key, "RESOLVE")

            for module in to_start:
                say("Starting module %s", module)
                try:
                    self.runtime.start(module)
                except Exception as exc:
                    logger.error("Failed to start module %s: %s", module, exc)
                    raise ModuleActivationError(module, "start", exc) from exc
                started_modules.append(module)
            for feature in added:
                self._transition(feature.key, "START")
                say("Installed feature %s", feature.id)
            for feature in resumed:
                self._transition(feature.key, "START")
                say("Started feature %s", feature.id)
        except ModuleActivationError:
            logger.warning(
                "Rolling back %d started and %d installed modules",
                len(started_modules),
                len(installed_modules),
            )
            for module in reversed(started_modules):
                self._quietly(self.runtime.stop, module)
            for module in reversed(installed_modules):
                self._quietly(self.runtime.uninstall, module)
            self.configs.discard(created)
            raise

        report.installed.extend(f.id for f in added)
        report.started_modules.extend(to_start)
        report.created_configs.extend(a.pid for a in created)

    def _restore(
        self, snapshot: Dict[FeatureKey, InstalledFeatureRecord], torn_down: "_Teardown"
    ) -> bool:
        """Return to ``snapshot`` after a failed teardown or bring-up.

        Modules stopped by the teardown are installed again if needed and
        restarted. Features whose modules cannot be restarted are left
        ``Installed``.
        """

        self.states.restore(snapshot)
        failed: Set[str] = set()
        for module in reversed(torn_down.stopped):
            try:
                if module in torn_down.modules:
                    self.runtime.install(module)
                self.runtime.start(module)
            except Exception as exc:
                logger.error("Failed to restore module %s: %s", module, exc)
                failed.add(module)
        if failed:
            for record in self.states.installed():
                if failed.intersection(record.feature.modules):
                    self.states.set_state(record.key, FeatureState.INSTALLED)
        self._update_gauges()
        return not failed

    @staticmethod
    def _quietly(action: Callable[[str], None], module: str) -> None:
        try:
            action(module)
        except Exception as exc:
            logger.warning("Rollback step for module %s failed: %s", module, exc)

    def _update_gauges(self) -> None:
        metrics.installed_features.set(len(self.states.installed()))
        metrics.started_modules.set(len(self.states.started_modules()))


class _Teardown:
    """Modules a teardown stopped and uninstalled, and the failure that ended it."""

    def __init__(self) -> None:
        self.stopped: List[str] = []
        self.modules: List[str] = []
        self.error: ModuleActivationError | None = None
