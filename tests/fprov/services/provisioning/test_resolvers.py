from __future__ import annotations

import httpx
import pytest

from fprov.services.provisioning.errors import FetchError
from fprov.services.provisioning.resolvers import (
    CompositeResolver,
    FileResolver,
    HttpResolver,
    LocatorResolver,
    MavenResolver,
    MemoryResolver,
    maven_path,
)


def test_file_resolver_reads_paths_and_file_uris(tmp_path):
    target = tmp_path / "features.yml"
    target.write_text("features: []")
    resolver = FileResolver()

    assert resolver.fetch(str(target)) == b"features: []"
    assert resolver.fetch(target.as_uri()) == b"features: []"
    assert FileResolver(tmp_path).fetch("features.yml") == b"features: []"


def test_file_resolver_missing(tmp_path):
    with pytest.raises(FetchError) as exc:
        FileResolver().fetch(str(tmp_path / "nope.yml"))
    assert exc.value.locator.endswith("nope.yml")


def test_http_resolver_uses_httpx():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/features.yml":
            return httpx.Response(200, text="features: []")
        return httpx.Response(404)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    resolver = HttpResolver(client=client)

    assert resolver.fetch("https://repo.example/features.yml") == b"features: []"
    with pytest.raises(FetchError, match="HTTP 404"):
        resolver.fetch("https://repo.example/missing.yml")


def test_http_resolver_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    resolver = HttpResolver(client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(FetchError, match="Unable to fetch"):
        resolver.fetch("http://down.example/f.yml")


def test_maven_path():
    assert (
        maven_path("mvn:org.apache.karaf.cellar/apache-karaf-cellar/3.0.0/xml/features")
        == "org/apache/karaf/cellar/apache-karaf-cellar/3.0.0/apache-karaf-cellar-3.0.0-features.xml"
    )
    assert maven_path("mvn:g/a/1.0") == "g/a/1.0/a-1.0.jar"
    with pytest.raises(FetchError):
        maven_path("mvn:g/a")


def test_maven_resolver_tries_roots_in_order():
    memory = MemoryResolver({"mem://second/g/a/1.0/a-1.0-features.yml": "features: []"})
    resolver = MavenResolver(["mem://first", "mem://second/"], memory)
    assert resolver.fetch("mvn:g/a/1.0/yml/features") == b"features: []"
    with pytest.raises(FetchError):
        resolver.fetch("mvn:g/b/1.0/yml/features")


def test_composite_dispatches_on_scheme():
    mem = MemoryResolver({"mem:x": "a"})
    composite = CompositeResolver({"mem": mem})
    assert composite.fetch("mem:x") == b"a"
    with pytest.raises(FetchError, match="No resolver"):
        composite.fetch("ftp://elsewhere")
    assert isinstance(composite, LocatorResolver)
