"""Configuration artifacts created and removed along with features.

Each PID is persisted as ``<config_dir>/<pid>.cfg`` with ``key = value``
lines. Artifacts that declare a backing file also get that file written under
the configuration directory. Without a configuration directory artifacts are
kept in memory only.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Collection, Dict, List, Optional

from .models import ConfigArtifact, Feature

logger = logging.getLogger(__name__)

__all__ = ["ConfigLifecycleManager"]

_FEATURE_MARKER = "# fprov.feature = "
_FILE_MARKER = "# fprov.file = "


def _render_properties(artifact: ConfigArtifact) -> str:
    lines = []
    if artifact.feature:
        lines.append(f"{_FEATURE_MARKER}{artifact.feature}")
    if artifact.file:
        lines.append(f"{_FILE_MARKER}{artifact.file}")
    for key, value in sorted(artifact.properties.items()):
        lines.append(f"{key} = {value}")
    return "\n".join(lines) + "\n"


def _parse_properties(pid: str, text: str) -> ConfigArtifact:
    artifact = ConfigArtifact(pid=pid)
    for line in text.splitlines():
        if line.startswith(_FEATURE_MARKER):
            artifact.feature = line[len(_FEATURE_MARKER):].strip() or None
            continue
        if line.startswith(_FILE_MARKER):
            artifact.file = line[len(_FILE_MARKER):].strip() or None
            continue
        stripped = line.strip()
        if not stripped or stripped.startswith(("#", "!")):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            key, _, value = stripped.partition(":")
        artifact.properties[key.strip()] = value.strip()
    return artifact


class ConfigLifecycleManager:
    def __init__(self, config_dir: str | os.PathLike[str] | None = None) -> None:
        self.config_dir = Path(config_dir) if config_dir is not None else None
        self._artifacts: Dict[str, ConfigArtifact] = {}
        self._lock = threading.RLock()
        if self.config_dir is not None:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _load(self) -> None:
        assert self.config_dir is not None
        for path in sorted(self.config_dir.glob("*.cfg")):
            try:
                artifact = _parse_properties(path.stem, path.read_text(encoding="utf-8"))
            except OSError as exc:
                logger.warning("Skipping unreadable configuration %s: %s", path, exc)
                continue
            self._artifacts[artifact.pid] = artifact

    def _pid_path(self, pid: str) -> Optional[Path]:
        return self.config_dir / f"{pid}.cfg" if self.config_dir is not None else None

    def file_path(self, artifact: ConfigArtifact) -> Optional[Path]:
        if artifact.file is None or self.config_dir is None:
            return None
        return self.config_dir / artifact.file

    # queries -------------------------------------------------------------------
    def exists(self, pid: str) -> bool:
        with self._lock:
            return pid in self._artifacts

    def get(self, pid: str) -> Optional[ConfigArtifact]:
        with self._lock:
            return self._artifacts.get(pid)

    def list(self) -> List[ConfigArtifact]:
        with self._lock:
            return list(self._artifacts.values())

    # lifecycle -----------------------------------------------------------------
    def materialize(self, feature: Feature) -> List[ConfigArtifact]:
        """Create every declared artifact of ``feature`` that does not exist yet.

        Returns only the artifacts created by this call.
        """

        created: List[ConfigArtifact] = []
        with self._lock:
            for spec in feature.configs:
                if spec.pid in self._artifacts:
                    logger.debug("Configuration %s already present; keeping it", spec.pid)
                    continue
                artifact = ConfigArtifact(
                    pid=spec.pid,
                    feature=feature.id,
                    properties=spec.properties_dict(),
                    file=spec.file,
                )
                try:
                    self._write(artifact, spec.content)
                except OSError:
                    self.discard([*created, artifact])
                    raise
                self._artifacts[spec.pid] = artifact
                created.append(artifact)
                logger.info("Created configuration %s for feature %s", spec.pid, feature.id)
        return created

    def _write(self, artifact: ConfigArtifact, content: Optional[str]) -> None:
        pid_path = self._pid_path(artifact.pid)
        if pid_path is not None:
            pid_path.write_text(_render_properties(artifact), encoding="utf-8")
        if artifact.file is None:
            return
        target = self.file_path(artifact)
        if target is None:
            logger.warning(
                "Configuration %s declares file %s but no configuration directory is set",
                artifact.pid,
                artifact.file,
            )
            return
        if target.exists():
            logger.debug("Configuration file %s already exists; keeping it", target)
            return
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content or "", encoding="utf-8")
        artifact.wrote_file = True

    def _delete(self, artifact: ConfigArtifact, *, with_file: bool = True) -> None:
        paths = [self._pid_path(artifact.pid)]
        if with_file:
            paths.append(self.file_path(artifact))
        for path in paths:
            if path is not None and path.exists():
                path.unlink()
        self._artifacts.pop(artifact.pid, None)

    def retain_or_delete(
        self,
        feature: Feature,
        delete_requested: bool = False,
        *,
        keep: Collection[str] = (),
    ) -> List[str]:
        """Keep the artifacts of ``feature`` or, on request, delete them.

        PIDs in ``keep`` are still declared by another installed feature and
        are never deleted. Deletion is best-effort: a failing artifact is
        logged and skipped. Returns the PIDs that were deleted.
        """

        if not delete_requested:
            logger.debug("Retaining configuration of feature %s", feature.id)
            return []
        deleted: List[str] = []
        with self._lock:
            for spec in feature.configs:
                artifact = self._artifacts.get(spec.pid)
                if artifact is None:
                    continue
                if spec.pid in keep:
                    logger.debug(
                        "Keeping configuration %s; still declared by an installed feature", spec.pid
                    )
                    continue
                try:
                    self._delete(artifact)
                except OSError as exc:
                    logger.warning("Unable to delete configuration %s: %s", spec.pid, exc)
                    continue
                deleted.append(spec.pid)
                logger.info("Deleted configuration %s of feature %s", spec.pid, feature.id)
        return deleted

    def discard(self, artifacts: List[ConfigArtifact]) -> None:
        """Remove artifacts created by a failed provisioning attempt."""

        with self._lock:
            for artifact in reversed(artifacts):
                try:
                    self._delete(artifact, with_file=artifact.wrote_file)
                except OSError as exc:
                    logger.warning("Unable to roll back configuration %s: %s", artifact.pid, exc)
