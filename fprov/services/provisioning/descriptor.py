"""Parsing of YAML/JSON feature repository descriptors.

A descriptor looks like::

    name: karaf-cellar-3.0.0
    repositories:
      - mvn:org.example/base/1.0/yaml/features
    features:
      - name: http
        version: 4.0.0
        description: HTTP service
        boot: false
        modules:
          - mvn:org.ops4j.pax.web/pax-web-api/4.0.0
        dependencies:
          - pax-http
          - name: pax-http-jetty
            version: "[4.0,5.0)"
        configs:
          - pid: org.ops4j.pax.web
            properties:
              org.osgi.service.http.port: 8181
            file: jetty.xml
            content: "<Configure/>"
"""

from __future__ import annotations

import logging
import posixpath
from typing import Any, List, Mapping
from urllib.parse import urlparse

import yaml  # type: ignore[import-untyped]

from .errors import ParseError
from .models import ConfigArtifactSpec, Feature, FeatureRef, Repository
from .versions import DEFAULT_VERSION

logger = logging.getLogger(__name__)

__all__ = ["parse_repository", "derive_repository_name"]


def derive_repository_name(locator: str) -> str:
    """Return the short name used for a repository without a declared name.

    ``mvn:group/artifact/version/...`` yields ``artifact-version``; any other
    locator yields its last path segment without extension.
    """

    if locator.startswith("mvn:"):
        coords = locator[4:].split("/")
        if len(coords) >= 3:
            return f"{coords[1]}-{coords[2]}"
        if len(coords) == 2:
            return coords[1]
    path = urlparse(locator).path or locator
    base = posixpath.basename(path.rstrip("/")) or locator
    stem, _ext = posixpath.splitext(base)
    return stem or base


def _as_list(value: Any, what: str, locator: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ParseError(locator, f"'{what}' must be a list")
    return value


def _parse_dependency(raw: Any, locator: str) -> FeatureRef:
    try:
        if isinstance(raw, str):
            return FeatureRef.parse(raw)
        if isinstance(raw, Mapping) and raw.get("name"):
            text = str(raw["name"])
            version = raw.get("version")
            if version is not None:
                text = f"{text}/{version}"
            return FeatureRef.parse(text)
    except ValueError as exc:
        raise ParseError(locator, str(exc)) from exc
    raise ParseError(locator, f"invalid dependency entry {raw!r}")


def _parse_config(raw: Any, locator: str) -> ConfigArtifactSpec:
    if not isinstance(raw, Mapping) or not raw.get("pid"):
        raise ParseError(locator, f"config entry requires a 'pid': {raw!r}")
    props = raw.get("properties") or {}
    if not isinstance(props, Mapping):
        raise ParseError(locator, f"properties of config '{raw['pid']}' must be a mapping")
    content = raw.get("content")
    return ConfigArtifactSpec(
        pid=str(raw["pid"]),
        properties=tuple((str(k), "" if v is None else str(v)) for k, v in props.items()),
        file=str(raw["file"]) if raw.get("file") else None,
        content=None if content is None else str(content),
    )


def _parse_module(raw: Any, locator: str) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    if isinstance(raw, Mapping) and raw.get("locator"):
        return str(raw["locator"]).strip()
    raise ParseError(locator, f"invalid module entry {raw!r}")


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _parse_flag(raw: Any, what: str, locator: str) -> bool:
    if raw is None:
        return False
    if isinstance(raw, bool):
        return raw
    lowered = str(raw).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ParseError(locator, f"{what} expects a boolean, got {raw!r}")


def _parse_feature(raw: Any, locator: str) -> Feature:
    if not isinstance(raw, Mapping):
        raise ParseError(locator, f"feature entry must be a mapping, got {type(raw).__name__}")
    name = raw.get("name")
    if not name or not isinstance(name, str) or "/" in name:
        raise ParseError(locator, f"invalid feature name {name!r}")
    version = raw.get("version")
    if isinstance(version, float):
        # unquoted YAML versions such as 1.10 lose their trailing zeros
        raise ParseError(locator, f"version of feature {name} must be quoted: {version!r}")
    version = str(version or DEFAULT_VERSION)
    boot = _parse_flag(raw.get("boot"), f"boot flag of feature {name}", locator)
    boot = boot or str(raw.get("install", "")).lower() == "auto"
    return Feature(
        name=name,
        version=version,
        description=str(raw.get("description") or ""),
        modules=tuple(_parse_module(m, locator) for m in _as_list(raw.get("modules"), "modules", locator)),
        dependencies=tuple(
            _parse_dependency(d, locator)
            for d in _as_list(raw.get("dependencies"), "dependencies", locator)
        ),
        configs=tuple(
            _parse_config(c, locator) for c in _as_list(raw.get("configs"), "configs", locator)
        ),
        boot=boot,
        region=raw.get("region"),
        repository=locator,
    )


def parse_repository(locator: str, payload: bytes | str) -> Repository:
    """Parse ``payload`` fetched from ``locator`` into a :class:`Repository`.

    Raises:
        ParseError: If the payload is not a valid descriptor.
    """

    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as exc:
        raise ParseError(locator, "descriptor is not valid UTF-8") from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        logger.error("Failed to parse repository descriptor %s: %s", locator, exc)
        raise ParseError(locator, str(exc)) from exc
    if not isinstance(data, Mapping):
        raise ParseError(locator, "descriptor must be a mapping")

    features = [_parse_feature(f, locator) for f in _as_list(data.get("features"), "features", locator)]
    seen: set[tuple[str, str]] = set()
    for feature in features:
        ident = (feature.name, feature.version)
        if ident in seen:
            raise ParseError(locator, f"duplicate feature {feature.id}")
        seen.add(ident)

    imports = [str(r).strip() for r in _as_list(data.get("repositories"), "repositories", locator)]
    name = data.get("name")
    return Repository(
        locator=locator,
        name=str(name) if name else derive_repository_name(locator),
        features=features,
        repositories=[r for r in imports if r],
    )
