"""Registry of parsed feature repository descriptors."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from .descriptor import parse_repository
from .errors import FetchError, NotFoundError, ParseError, ProvisioningError
from .models import Repository
from .resolvers import LocatorResolver
from .selectors import select

logger = logging.getLogger(__name__)

__all__ = ["RepositoryStore"]


class RepositoryStore:
    """Holds repositories keyed by locator in registration order.

    Descriptor fetches run without holding the store lock; only the final
    swap of parsed data is guarded.
    """

    def __init__(self, resolver: LocatorResolver) -> None:
        self.resolver = resolver
        self._repos: Dict[str, Repository] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    def _load(self, locator: str) -> Repository:
        payload = self.resolver.fetch(locator)
        repo = parse_repository(locator, payload)
        repo.fetched_at = datetime.now(timezone.utc)
        return repo

    def _load_with_imports(self, locator: str) -> List[Repository]:
        """Fetch ``locator`` and every import not yet registered."""

        loaded: Dict[str, Repository] = {}
        pending = [locator]
        while pending:
            current = pending.pop(0)
            if current in loaded or self.contains(current):
                continue
            repo = self._load(current)
            loaded[current] = repo
            pending.extend(repo.repositories)
        return list(loaded.values())

    # ------------------------------------------------------------------
    def contains(self, locator: str) -> bool:
        with self._lock:
            return locator in self._repos

    def get(self, locator: str) -> Repository:
        with self._lock:
            try:
                return self._repos[locator]
            except KeyError:
                raise NotFoundError(f"Repository {locator} is not registered") from None

    def list(self) -> List[Repository]:
        with self._lock:
            return list(self._repos.values())

    def locators(self) -> List[str]:
        with self._lock:
            return list(self._repos)

    def match(self, selector: str) -> List[Repository]:
        """Repositories whose locator or short name matches ``selector``."""
        return select(
            selector,
            self.list(),
            lambda repo: (repo.name, repo.locator),
            what="repository",
        )

    def add(self, locator: str) -> List[Repository]:
        """Fetch and register ``locator`` plus its imports.

        Either every fetched descriptor is registered or none is. Adding an
        already registered locator returns an empty list.

        Raises:
            FetchError: If a descriptor is unreachable.
            ParseError: If a descriptor is malformed.
        """

        locator = locator.strip()
        if self.contains(locator):
            logger.info("Repository %s is already registered", locator)
            return []
        loaded = self._load_with_imports(locator)
        with self._lock:
            added = []
            for repo in loaded:
                if repo.locator in self._repos:
                    continue
                self._repos[repo.locator] = repo
                added.append(repo)
        for repo in added:
            logger.info(
                "Added repository %s (%s) with %d features",
                repo.name,
                repo.locator,
                len(repo.features),
            )
        return added

    def remove(self, locators: Iterable[str]) -> List[Repository]:
        removed = []
        with self._lock:
            for locator in locators:
                repo = self._repos.pop(locator, None)
                if repo is not None:
                    removed.append(repo)
        for repo in removed:
            logger.info("Removed repository %s (%s)", repo.name, repo.locator)
        return removed

    def refresh(
        self, repos: Iterable[Repository]
    ) -> Tuple[List[Repository], Dict[str, ProvisioningError]]:
        """Re-fetch ``repos`` one by one.

        Returns the refreshed repositories and the per-locator failures; a
        failing repository keeps its previous definition.
        """

        refreshed: List[Repository] = []
        failures: Dict[str, ProvisioningError] = {}
        for repo in repos:
            try:
                fresh = self._load(repo.locator)
            except (FetchError, ParseError) as exc:
                logger.warning("Refresh of repository %s failed: %s", repo.locator, exc)
                failures[repo.locator] = exc
                continue
            with self._lock:
                if repo.locator not in self._repos:
                    continue
                self._repos[repo.locator] = fresh
            refreshed.append(fresh)
            logger.info("Refreshed repository %s (%s)", fresh.name, fresh.locator)
            for imported in fresh.repositories:
                if self.contains(imported):
                    continue
                try:
                    self.add(imported)
                except (FetchError, ParseError) as exc:
                    logger.warning("Import %s of %s failed: %s", imported, repo.locator, exc)
                    failures[imported] = exc
        return refreshed, failures
