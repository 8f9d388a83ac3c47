"""Shared data models for repositories, features and tracked state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .versions import ANY_VERSION, DEFAULT_VERSION, Version, VersionRange

__all__ = [
    "FeatureState",
    "FeatureKey",
    "FeatureRef",
    "ConfigArtifactSpec",
    "Feature",
    "Repository",
    "InstalledFeatureRecord",
    "ConfigArtifact",
    "OperationReport",
]


class FeatureState(str, Enum):
    """Lifecycle states of a tracked feature."""

    UNINSTALLED = "Uninstalled"
    INSTALLED = "Installed"
    RESOLVED = "Resolved"
    STARTED = "Started"


@dataclass(frozen=True)
class FeatureKey:
    """Concrete ``(name, version)`` identity of a feature."""

    name: str
    version: str

    @classmethod
    def parse(cls, text: str) -> "FeatureKey":
        name, _, version = text.partition("/")
        return cls(name=name, version=version or DEFAULT_VERSION)

    def sort_key(self) -> tuple:
        return (self.name, Version.parse(self.version).sort_key())

    def __str__(self) -> str:
        return f"{self.name}/{self.version}"


@dataclass(frozen=True)
class FeatureRef:
    """Reference to a feature by name with an optional version constraint."""

    name: str
    version: VersionRange = ANY_VERSION

    @classmethod
    def parse(cls, text: str) -> "FeatureRef":
        raw = text.strip()
        if not raw:
            raise ValueError("Empty feature reference")
        name, _, version = raw.partition("/")
        return cls(name=name.strip(), version=VersionRange.parse(version))

    def matches(self, key: FeatureKey) -> bool:
        return key.name == self.name and self.version.contains(key.version)

    def __str__(self) -> str:
        if self.version.is_any:
            return self.name
        return f"{self.name}/{self.version}"


@dataclass(frozen=True)
class ConfigArtifactSpec:
    """Configuration artifact declared by a feature.

    ``file`` names an optional backing file relative to the configuration
    directory; ``content`` is written to it verbatim.
    """

    pid: str
    properties: Tuple[Tuple[str, str], ...] = ()
    file: Optional[str] = None
    content: Optional[str] = None

    def properties_dict(self) -> Dict[str, str]:
        return dict(self.properties)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"pid": self.pid, "properties": self.properties_dict()}
        if self.file is not None:
            data["file"] = self.file
        if self.content is not None:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConfigArtifactSpec":
        props = data.get("properties") or {}
        return cls(
            pid=str(data["pid"]),
            properties=tuple((str(k), str(v)) for k, v in props.items()),
            file=data.get("file"),
            content=data.get("content"),
        )


@dataclass(frozen=True)
class Feature:
    """Immutable feature definition parsed from a repository descriptor."""

    name: str
    version: str = DEFAULT_VERSION
    description: str = ""
    modules: Tuple[str, ...] = ()
    dependencies: Tuple[FeatureRef, ...] = ()
    configs: Tuple[ConfigArtifactSpec, ...] = ()
    boot: bool = False
    region: Optional[str] = None
    repository: Optional[str] = None

    @property
    def key(self) -> FeatureKey:
        return FeatureKey(self.name, self.version)

    @property
    def id(self) -> str:
        return str(self.key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "modules": list(self.modules),
            "dependencies": [str(dep) for dep in self.dependencies],
            "configs": [cfg.to_dict() for cfg in self.configs],
            "boot": self.boot,
            "region": self.region,
            "repository": self.repository,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Feature":
        return cls(
            name=str(data["name"]),
            version=str(data.get("version") or DEFAULT_VERSION),
            description=str(data.get("description") or ""),
            modules=tuple(str(m) for m in data.get("modules", [])),
            dependencies=tuple(FeatureRef.parse(d) for d in data.get("dependencies", [])),
            configs=tuple(ConfigArtifactSpec.from_dict(c) for c in data.get("configs", [])),
            boot=bool(data.get("boot", False)),
            region=data.get("region"),
            repository=data.get("repository"),
        )


@dataclass
class Repository:
    """A parsed feature repository descriptor."""

    locator: str
    name: str
    features: List[Feature] = field(default_factory=list)
    repositories: List[str] = field(default_factory=list)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def feature_keys(self) -> List[FeatureKey]:
        return [feature.key for feature in self.features]


@dataclass
class InstalledFeatureRecord:
    """Tracked lifecycle state of one feature."""

    feature: Feature
    state: FeatureState = FeatureState.UNINSTALLED
    required: bool = False
    dependencies: List[FeatureKey] = field(default_factory=list)
    configs: List[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> FeatureKey:
        return self.feature.key

    @property
    def repository(self) -> Optional[str]:
        return self.feature.repository

    @property
    def region(self) -> Optional[str]:
        return self.feature.region

    @property
    def installed(self) -> bool:
        return self.state is not FeatureState.UNINSTALLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feature": self.feature.to_dict(),
            "state": self.state.value,
            "required": self.required,
            "dependencies": [str(dep) for dep in self.dependencies],
            "configs": list(self.configs),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstalledFeatureRecord":
        updated = data.get("updated_at")
        return cls(
            feature=Feature.from_dict(data["feature"]),
            state=FeatureState(data.get("state", FeatureState.UNINSTALLED.value)),
            required=bool(data.get("required", False)),
            dependencies=[FeatureKey.parse(d) for d in data.get("dependencies", [])],
            configs=list(data.get("configs", [])),
            updated_at=(
                datetime.fromisoformat(updated) if updated else datetime.now(timezone.utc)
            ),
        )


@dataclass
class ConfigArtifact:
    """A materialized configuration PID."""

    pid: str
    feature: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)
    file: Optional[str] = None
    # set when this artifact wrote its backing file rather than finding it
    wrote_file: bool = False


@dataclass
class OperationReport:
    """Summary of the side effects of one provisioning run."""

    installed: List[str] = field(default_factory=list)
    uninstalled: List[str] = field(default_factory=list)
    started_modules: List[str] = field(default_factory=list)
    stopped_modules: List[str] = field(default_factory=list)
    refreshed_modules: List[str] = field(default_factory=list)
    created_configs: List[str] = field(default_factory=list)
    deleted_configs: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.installed or self.uninstalled)
