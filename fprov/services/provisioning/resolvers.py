"""Locator resolvers returning repository descriptor bytes."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Mapping, Protocol, Sequence, runtime_checkable
from urllib.parse import unquote, urlparse

import httpx

from .errors import FetchError

logger = logging.getLogger(__name__)

__all__ = [
    "LocatorResolver",
    "FileResolver",
    "HttpResolver",
    "MemoryResolver",
    "MavenResolver",
    "CompositeResolver",
    "default_resolver",
    "maven_path",
]


@runtime_checkable
class LocatorResolver(Protocol):
    """Fetches the raw bytes addressed by a locator."""

    def fetch(self, locator: str) -> bytes:
        ...


class FileResolver:
    """Reads ``file:`` URIs and plain filesystem paths."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self.base_dir = Path(base_dir) if base_dir is not None else None

    def _path(self, locator: str) -> Path:
        if locator.startswith("file:"):
            parsed = urlparse(locator)
            path = Path(unquote(parsed.path))
        else:
            path = Path(locator)
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    def fetch(self, locator: str) -> bytes:
        path = self._path(locator)
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.warning("Unable to read repository %s: %s", locator, exc)
            raise FetchError(locator, f"Unable to read {path}: {exc}") from exc


class HttpResolver:
    """Fetches ``http(s)://`` locators with :mod:`httpx`."""

    def __init__(self, *, timeout: float = 10.0, client: httpx.Client | None = None) -> None:
        self.timeout = timeout
        self._client = client

    def fetch(self, locator: str) -> bytes:
        try:
            if self._client is not None:
                response = self._client.get(locator, follow_redirects=True)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.get(locator, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Repository %s returned HTTP %s", locator, exc.response.status_code
            )
            raise FetchError(
                locator, f"HTTP {exc.response.status_code} fetching {locator}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Unable to fetch repository %s: %s", locator, exc)
            raise FetchError(locator, f"Unable to fetch {locator}: {exc}") from exc
        return response.content


class MemoryResolver:
    """Serves descriptors registered in memory; used by tests and demos."""

    def __init__(self, documents: Mapping[str, bytes | str] | None = None) -> None:
        self._documents: Dict[str, bytes] = {}
        for locator, payload in (documents or {}).items():
            self.put(locator, payload)

    def put(self, locator: str, payload: bytes | str) -> None:
        self._documents[locator] = payload.encode("utf-8") if isinstance(payload, str) else payload

    def remove(self, locator: str) -> None:
        self._documents.pop(locator, None)

    def fetch(self, locator: str) -> bytes:
        try:
            return self._documents[locator]
        except KeyError:
            raise FetchError(locator) from None


def maven_path(locator: str) -> str:
    """Translate ``mvn:group/artifact/version[/type[/classifier]]`` to a repository path."""

    coords = locator[4:].split("/") if locator.startswith("mvn:") else []
    if len(coords) < 3 or not all(coords[:3]):
        raise FetchError(locator, f"Invalid maven locator {locator}")
    group, artifact, version = coords[:3]
    ext = coords[3] if len(coords) > 3 and coords[3] else "jar"
    classifier = coords[4] if len(coords) > 4 and coords[4] else None
    filename = f"{artifact}-{version}"
    if classifier:
        filename += f"-{classifier}"
    return "/".join([*group.split("."), artifact, version, f"{filename}.{ext}"])


class MavenResolver:
    """Resolves ``mvn:`` locators against an ordered list of repository roots."""

    def __init__(self, roots: Sequence[str], delegate: LocatorResolver) -> None:
        self.roots = [root.rstrip("/") for root in roots]
        self.delegate = delegate

    def fetch(self, locator: str) -> bytes:
        path = maven_path(locator)
        last: FetchError | None = None
        for root in self.roots:
            try:
                return self.delegate.fetch(f"{root}/{path}")
            except FetchError as exc:
                logger.debug("Maven root %s does not provide %s", root, locator)
                last = exc
        raise FetchError(locator, f"No maven repository provides {locator}") from last


class CompositeResolver:
    """Dispatches on the locator scheme; unknown schemes go to ``fallback``."""

    def __init__(
        self,
        resolvers: Mapping[str, LocatorResolver],
        fallback: LocatorResolver | None = None,
    ) -> None:
        self.resolvers = dict(resolvers)
        self.fallback = fallback

    def fetch(self, locator: str) -> bytes:
        scheme = locator.split(":", 1)[0].lower() if ":" in locator else ""
        resolver = self.resolvers.get(scheme) or self.fallback
        if resolver is None:
            raise FetchError(locator, f"No resolver registered for scheme '{scheme}'")
        return resolver.fetch(locator)


def default_resolver(
    *, http_timeout: float = 10.0, maven_roots: Sequence[str] = ()
) -> CompositeResolver:
    """Return the resolver used when no explicit one is configured."""

    files = FileResolver()
    http = HttpResolver(timeout=http_timeout)
    resolvers: Dict[str, LocatorResolver] = {
        "file": files,
        "http": http,
        "https": http,
    }
    if maven_roots:
        resolvers["mvn"] = MavenResolver(
            maven_roots, CompositeResolver({"file": files, "http": http, "https": http}, files)
        )
    return CompositeResolver(resolvers, fallback=files)
