"""Dependency resolution for feature install plans.

The resolver walks feature dependencies from the requested roots and records
them in a :class:`networkx.DiGraph` whose edges point from a dependent to
what it requires (another feature or a module). Every dependency reference is
pinned to exactly one concrete feature before anything else happens:

* a version already selected in this plan wins when it satisfies the range;
* otherwise a ``preferred`` (typically already installed) version wins;
* otherwise the highest matching version is picked.

Selecting a second version of a name is a :class:`VersionConflictError`
unless side-by-side installs are allowed. Cycles between features are
reported as :class:`CyclicDependencyError`.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Sequence, Set, Tuple

import networkx as nx

from .errors import CyclicDependencyError, NotFoundError, VersionConflictError
from .models import Feature, FeatureKey, FeatureRef

logger = logging.getLogger(__name__)

__all__ = ["FeatureLookup", "InstallationPlan", "DependencyResolver"]

FeatureLookup = Callable[[FeatureRef], List[Feature]]

Node = Tuple[str, str]


def _feature_node(key: FeatureKey) -> Node:
    return ("feature", str(key))


def _module_node(locator: str) -> Node:
    return ("module", locator)


@dataclass
class InstallationPlan:
    """Resolved closure of a set of root features."""

    roots: List[FeatureKey]
    features: List[Feature]
    modules: List[str]
    graph: nx.DiGraph = field(repr=False)

    def keys(self) -> Set[FeatureKey]:
        return {feature.key for feature in self.features}

    def feature(self, key: FeatureKey) -> Feature:
        for candidate in self.features:
            if candidate.key == key:
                return candidate
        raise KeyError(str(key))

    def dependencies_of(self, key: FeatureKey) -> List[FeatureKey]:
        node = _feature_node(key)
        deps = [
            self.graph.nodes[succ]["feature"].key
            for succ in self.graph.successors(node)
            if succ[0] == "feature"
        ]
        return sorted(deps, key=lambda k: k.sort_key())

    def module_owners(self, locator: str) -> List[FeatureKey]:
        node = _module_node(locator)
        if node not in self.graph:
            return []
        return [self.graph.nodes[pred]["feature"].key for pred in self.graph.predecessors(node)]

    def uninstall_order(self, keep: Iterable[FeatureKey] = ()) -> List[Feature]:
        """Features removable once only ``keep`` remains, dependents first."""

        retained: Set[Node] = set()
        for key in keep:
            node = _feature_node(key)
            if node in self.graph:
                retained.add(node)
                retained.update(nx.descendants(self.graph, node))
        removable = [f for f in self.features if _feature_node(f.key) not in retained]
        removable.reverse()
        return removable


class DependencyResolver:
    """Computes install plans; never touches the module runtime."""

    def __init__(self, *, allow_side_by_side: bool = False) -> None:
        self.allow_side_by_side = allow_side_by_side

    def plan(
        self,
        roots: Sequence[Feature],
        lookup: FeatureLookup,
        *,
        preferred: Iterable[FeatureKey] = (),
    ) -> InstallationPlan:
        """Resolve the transitive closure of ``roots``.

        Args:
            roots: Features requested explicitly.
            lookup: Returns the candidates for a reference, highest version first.
            preferred: Keys to favour when several versions satisfy a range.

        Raises:
            NotFoundError: If a dependency has no candidate.
            VersionConflictError: If two versions of one name are required.
            CyclicDependencyError: If features depend on each other in a loop.
        """

        graph = nx.DiGraph()
        preferred_keys = set(preferred)
        selected: Dict[str, List[Feature]] = {}
        queue: deque[Feature] = deque()

        for root in roots:
            chosen = selected.setdefault(root.name, [])
            if root in chosen:
                continue
            if chosen and not self.allow_side_by_side:
                raise VersionConflictError(
                    root.name,
                    [f.version for f in chosen] + [root.version],
                    "requested together",
                )
            chosen.append(root)
            queue.append(root)
            graph.add_node(_feature_node(root.key), feature=root)

        visited: Set[FeatureKey] = set()
        while queue:
            feature = queue.popleft()
            if feature.key in visited:
                continue
            visited.add(feature.key)
            node = _feature_node(feature.key)
            graph.add_node(node, feature=feature)
            for module in feature.modules:
                graph.add_node(_module_node(module), module=module)
                graph.add_edge(node, _module_node(module))
            for ref in feature.dependencies:
                dep = self._choose(ref, feature, selected, preferred_keys, lookup)
                dep_node = _feature_node(dep.key)
                if dep_node not in graph:
                    graph.add_node(dep_node, feature=dep)
                graph.add_edge(node, dep_node)
                if dep.key not in visited:
                    queue.append(dep)

        feature_graph = graph.subgraph(n for n in graph if n[0] == "feature")
        try:
            cycle = nx.find_cycle(feature_graph)
        except nx.NetworkXNoCycle:
            cycle = None
        if cycle:
            names = [edge[0][1] for edge in cycle]
            logger.error("Dependency cycle detected: %s", " -> ".join(names))
            raise CyclicDependencyError(names)

        order = list(
            nx.lexicographical_topological_sort(feature_graph.reverse(copy=True), key=lambda n: n[1])
        )
        features = [graph.nodes[n]["feature"] for n in order]
        modules: Dict[str, None] = {}
        for feature in features:
            for module in feature.modules:
                modules.setdefault(module, None)

        return InstallationPlan(
            roots=[root.key for root in roots],
            features=features,
            modules=list(modules),
            graph=graph,
        )

    def _choose(
        self,
        ref: FeatureRef,
        dependent: Feature,
        selected: Dict[str, List[Feature]],
        preferred: Set[FeatureKey],
        lookup: FeatureLookup,
    ) -> Feature:
        chosen = selected.setdefault(ref.name, [])
        for existing in chosen:
            if ref.matches(existing.key):
                return existing

        candidates = lookup(ref)
        if not candidates:
            raise NotFoundError(f"Feature {ref} required by {dependent.id} was not found")
        pick = next((c for c in candidates if c.key in preferred), candidates[0])

        if chosen and not self.allow_side_by_side:
            raise VersionConflictError(
                ref.name,
                [f.version for f in chosen] + [pick.version],
                f"{dependent.id} requires {ref}",
            )
        chosen.append(pick)
        logger.debug("Selected %s for %s required by %s", pick.id, ref, dependent.id)
        return pick
