from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping

import yaml  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

__all__ = [
    "ProvisioningConfig",
    "find_config_file",
    "load_provisioning_config",
    "apply_env_overrides",
]


@dataclass
class ProvisioningConfig:
    """Settings for the provisioning engine and its CLI."""

    repositories: List[str] = field(
        default_factory=list, metadata={"env": "FPROV_REPOSITORIES"}
    )
    boot_features: List[str] = field(
        default_factory=list, metadata={"env": "FPROV_BOOT_FEATURES"}
    )
    state_file: str | None = field(
        default=".fprov_state.json", metadata={"env": "FPROV_STATE_FILE"}
    )
    config_dir: str | None = field(
        default=".fprov_config", metadata={"env": "FPROV_CONFIG_DIR"}
    )
    admin_roles: List[str] = field(
        default_factory=lambda: ["admin"], metadata={"env": "FPROV_ADMIN_ROLES"}
    )
    default_roles: List[str] = field(
        default_factory=lambda: ["admin"], metadata={"env": "FPROV_DEFAULT_ROLES"}
    )
    maven_repositories: List[str] = field(
        default_factory=list, metadata={"env": "FPROV_MAVEN_REPOSITORIES"}
    )
    allow_side_by_side: bool = field(
        default=False, metadata={"env": "FPROV_ALLOW_SIDE_BY_SIDE"}
    )
    retain_uninstalled_records: bool = field(
        default=True, metadata={"env": "FPROV_RETAIN_UNINSTALLED"}
    )
    auto_refresh: bool = field(default=True, metadata={"env": "FPROV_AUTO_REFRESH"})
    http_timeout_seconds: float = field(
        default=10.0, metadata={"env": "FPROV_HTTP_TIMEOUT"}
    )
    module_runtime: str | None = field(
        default=None, metadata={"env": "FPROV_MODULE_RUNTIME"}
    )


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce(name: str, default: Any, raw: str) -> Any:
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{name} expects a boolean, got {raw!r}")
    if isinstance(default, float):
        try:
            return float(raw)
        except ValueError as exc:
            raise ValueError(f"{name} expects a number, got {raw!r}") from exc
    if isinstance(default, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw or None


def apply_env_overrides(
    config: ProvisioningConfig, environ: Mapping[str, str] | None = None
) -> ProvisioningConfig:
    """Override fields from the ``env`` variable named in their metadata."""

    env = os.environ if environ is None else environ
    defaults = ProvisioningConfig()
    for f in fields(config):
        var = f.metadata.get("env")
        if not var or var not in env:
            continue
        value = _coerce(f.name, getattr(defaults, f.name), env[var])
        logger.debug("Configuration %s overridden by %s", f.name, var)
        setattr(config, f.name, value)
    return config


def find_config_file(cwd: Path | None = None) -> str | None:
    """Return the first discoverable configuration file in ``cwd``."""

    base = Path.cwd() if cwd is None else cwd

    for name in ("fprov.yml", "fprov.yaml"):
        candidate = base / name
        if candidate.is_file():
            return str(candidate)
    return None


def _read_config_mapping(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            try:
                data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                logger.error("Failed to parse configuration file %s: %s", path, exc)
                raise ValueError(f"Failed to parse configuration file {path}") from exc
    except (FileNotFoundError, OSError) as exc:
        logger.error("Unable to open configuration file %s: %s", path, exc)
        raise

    if not isinstance(data, dict):
        raise TypeError("Provisioning config must be a mapping")
    return data


def load_provisioning_config(
    path: str | None = None, *, environ: Mapping[str, str] | None = None
) -> ProvisioningConfig:
    """Parse YAML/JSON and populate :class:`ProvisioningConfig`.

    Without ``path`` the defaults are used. Environment overrides are applied
    last either way.
    """

    if path is None:
        return apply_env_overrides(ProvisioningConfig(), environ)

    data = _read_config_mapping(path)
    # a top-level "provisioning" section is accepted as well as flat keys
    section = data.get("provisioning", data)
    if not isinstance(section, dict):
        raise TypeError("provisioning section must be a mapping")

    known: Dict[str, Any] = {f.name: f for f in fields(ProvisioningConfig)}
    unknown = sorted(set(section) - set(known))
    if unknown:
        logger.warning("Ignoring unknown configuration keys in %s: %s", path, ", ".join(unknown))
    values = {k: v for k, v in section.items() if k in known}
    for key in ("repositories", "boot_features", "admin_roles", "default_roles", "maven_repositories"):
        if key in values:
            value = values[key]
            if value is None:
                values[key] = []
            elif isinstance(value, str):
                values[key] = [value]
            elif not isinstance(value, list):
                raise TypeError(f"{key} must be a list")
            else:
                values[key] = [str(item) for item in value]
    config = ProvisioningConfig(**values)
    return apply_env_overrides(config, environ)
