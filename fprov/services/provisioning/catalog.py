"""Feature index across all registered repositories."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .errors import NotFoundError
from .models import Feature, FeatureKey, FeatureRef, FeatureState
from .repository_store import RepositoryStore
from .selectors import select
from .state import FeatureStateStore
from .versions import Version

logger = logging.getLogger(__name__)

__all__ = ["CatalogEntry", "FeatureCatalog"]


@dataclass(frozen=True)
class CatalogEntry:
    """A feature annotated with its tracked state."""

    feature: Feature
    state: FeatureState
    required: bool
    repository_name: str
    repository_locator: str

    @property
    def installed(self) -> bool:
        return self.state is not FeatureState.UNINSTALLED


def _newest_first(features: List[Feature]) -> List[Feature]:
    ordered = sorted(features, key=lambda f: Version.parse(f.version).sort_key())
    ordered.reverse()
    return ordered


class FeatureCatalog:
    """Resolves feature references against the repository store.

    The index is rebuilt from the store snapshot on every call so refreshed
    descriptors are visible immediately.
    """

    def __init__(self, repositories: RepositoryStore, states: FeatureStateStore) -> None:
        self.repositories = repositories
        self.states = states

    def _index(self) -> Dict[FeatureKey, Feature]:
        index: Dict[FeatureKey, Feature] = {}
        for repo in self.repositories.list():
            for feature in repo.features:
                if feature.key in index:
                    logger.debug(
                        "Feature %s from %s shadowed by %s",
                        feature.id,
                        repo.locator,
                        index[feature.key].repository,
                    )
                    continue
                index[feature.key] = feature
        return index

    def features(self) -> List[Feature]:
        return list(self._index().values())

    def get(self, key: FeatureKey) -> Optional[Feature]:
        return self._index().get(key)

    def candidates(self, ref: FeatureRef | str) -> List[Feature]:
        """All features satisfying ``ref``, highest version first."""
        if isinstance(ref, str):
            ref = FeatureRef.parse(ref)
        matches = [f for f in self._index().values() if ref.matches(f.key)]
        return _newest_first(matches)

    def resolve(self, ref: FeatureRef | str) -> Feature:
        """Return the concrete feature for ``"name"`` or ``"name/version"``.

        Raises:
            NotFoundError: If no registered repository declares a match.
        """

        if isinstance(ref, str):
            ref = FeatureRef.parse(ref)
        found = self.candidates(ref)
        if not found:
            raise NotFoundError(f"No matching features for {ref}")
        return found[0]

    def boot_features(self) -> List[Feature]:
        return [f for f in self.features() if f.boot]

    # listing -----------------------------------------------------------------
    def _repo_names(self) -> Dict[str, str]:
        return {repo.locator: repo.name for repo in self.repositories.list()}

    def _entry(self, feature: Feature, names: Dict[str, str]) -> CatalogEntry:
        record = self.states.get(feature.key)
        locator = feature.repository or ""
        return CatalogEntry(
            feature=feature,
            state=record.state if record is not None else FeatureState.UNINSTALLED,
            required=bool(record and record.installed and record.required),
            repository_name=names.get(locator, ""),
            repository_locator=locator,
        )

    def list(
        self, *, installed_only: bool = False, repository: str | None = None
    ) -> List[CatalogEntry]:
        """Every known feature with its state, sorted by name then version.

        Installed features whose repository no longer declares them are
        included from their tracked snapshot.
        """

        names = self._repo_names()
        index = self._index()
        for record in self.states.installed():
            index.setdefault(record.key, record.feature)
        entries = [self._entry(feature, names) for feature in index.values()]
        if installed_only:
            entries = [e for e in entries if e.installed]
        if repository is not None:
            entries = [
                e
                for e in entries
                if repository in (e.repository_name, e.repository_locator)
            ]
        entries.sort(key=lambda e: e.feature.key.sort_key())
        return entries

    def versions(self, selector: str) -> List[CatalogEntry]:
        """Every version of the features whose name matches ``selector``.

        Returns an empty list when no feature name matches.
        """

        names = self._repo_names()
        try:
            features = select(
                selector,
                self.features(),
                lambda feature: (feature.name,),
                what="feature",
            )
        except NotFoundError:
            logger.debug("No feature matches %s", selector)
            return []
        entries = [self._entry(f, names) for f in features]
        entries.sort(
            key=lambda e: (e.feature.name, Version.parse(e.feature.version).sort_key())
        )
        # newest first within each name
        grouped: Dict[str, List[CatalogEntry]] = {}
        for entry in entries:
            grouped.setdefault(entry.feature.name, []).append(entry)
        result: List[CatalogEntry] = []
        for name in sorted(grouped):
            result.extend(reversed(grouped[name]))
        return result
