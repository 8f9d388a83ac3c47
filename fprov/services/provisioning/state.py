"""Tracked per-feature lifecycle state.

The store is an explicit object handed to the components that need it, so
several engines can coexist in one process. When a ``path`` is given every
mutation is written to a JSON document so state survives restarts.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .models import FeatureKey, FeatureState, InstalledFeatureRecord

logger = logging.getLogger(__name__)

__all__ = ["FeatureStateStore"]


class FeatureStateStore:
    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self.path = Path(path) if path else None
        self._records: Dict[FeatureKey, InstalledFeatureRecord] = {}
        self._repositories: List[str] = []
        self._lock = threading.RLock()
        if self.path is not None:
            self._load()

    # persistence -----------------------------------------------------------
    def _load(self) -> None:
        assert self.path is not None
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Unable to read state file %s: %s", self.path, exc)
            raise ValueError(f"Unable to read state file {self.path}") from exc
        for raw in data.get("features", []):
            record = InstalledFeatureRecord.from_dict(raw)
            self._records[record.key] = record
        self._repositories = list(data.get("repositories", []))
        logger.debug("Loaded %d feature records from %s", len(self._records), self.path)

    def _save(self) -> None:
        if self.path is None:
            return
        payload = {
            "repositories": list(self._repositories),
            "features": [record.to_dict() for record in self._records.values()],
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self.path)

    # records ---------------------------------------------------------------
    def get(self, key: FeatureKey) -> Optional[InstalledFeatureRecord]:
        with self._lock:
            return self._records.get(key)

    def state_of(self, key: FeatureKey) -> FeatureState:
        record = self.get(key)
        return record.state if record is not None else FeatureState.UNINSTALLED

    def records(self) -> List[InstalledFeatureRecord]:
        with self._lock:
            return list(self._records.values())

    def installed(self) -> List[InstalledFeatureRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.installed]

    def installed_named(self, name: str) -> List[InstalledFeatureRecord]:
        return [r for r in self.installed() if r.feature.name == name]

    def required_keys(self) -> List[FeatureKey]:
        return [r.key for r in self.installed() if r.required]

    def put(self, record: InstalledFeatureRecord) -> None:
        with self._lock:
            record.updated_at = datetime.now(timezone.utc)
            self._records[record.key] = record
            self._save()

    def set_state(self, key: FeatureKey, state: FeatureState) -> None:
        with self._lock:
            record = self._records[key]
            record.state = state
            record.updated_at = datetime.now(timezone.utc)
            self._save()

    def drop(self, key: FeatureKey) -> None:
        with self._lock:
            if self._records.pop(key, None) is not None:
                self._save()

    def module_owners(self) -> Dict[str, Set[FeatureKey]]:
        """Map every module of an installed feature to the features owning it."""
        owners: Dict[str, Set[FeatureKey]] = {}
        for record in self.installed():
            for module in record.feature.modules:
                owners.setdefault(module, set()).add(record.key)
        return owners

    def started_modules(self) -> List[str]:
        seen: Dict[str, None] = {}
        for record in self.installed():
            if record.state is FeatureState.STARTED:
                for module in record.feature.modules:
                    seen.setdefault(module, None)
        return list(seen)

    # repositories ----------------------------------------------------------
    def repositories(self) -> List[str]:
        with self._lock:
            return list(self._repositories)

    def set_repositories(self, locators: Iterable[str]) -> None:
        with self._lock:
            self._repositories = list(locators)
            self._save()

    # rollback support --------------------------------------------------------
    def snapshot(self) -> Dict[FeatureKey, InstalledFeatureRecord]:
        with self._lock:
            return copy.deepcopy(self._records)

    def restore(self, snapshot: Dict[FeatureKey, InstalledFeatureRecord]) -> None:
        with self._lock:
            self._records = copy.deepcopy(snapshot)
            self._save()
