"""Tests for repository descriptor parsing."""

from __future__ import annotations

import pytest

from fprov.services.provisioning.descriptor import derive_repository_name, parse_repository
from fprov.services.provisioning.errors import ParseError

DESCRIPTOR = """
name: web-4.0.0
repositories:
  - mem:base
features:
  - name: http
    version: "4.0.0"
    description: HTTP service
    modules:
      - mvn:org.example/http-api/4.0.0
      - locator: mvn:org.example/http-impl/4.0.0
    dependencies:
      - base
      - name: jetty
        version: "[9.0,10.0)"
    configs:
      - pid: org.example.http
        properties:
          port: 8181
        file: jetty.xml
        content: "<Configure/>"
  - name: base
    install: auto
"""


def test_parse_full_descriptor():
    repo = parse_repository("mem:web", DESCRIPTOR)
    assert repo.name == "web-4.0.0"
    assert repo.repositories == ["mem:base"]
    http, base = repo.features
    assert http.id == "http/4.0.0"
    assert http.repository == "mem:web"
    assert http.modules == ("mvn:org.example/http-api/4.0.0", "mvn:org.example/http-impl/4.0.0")
    assert [str(d) for d in http.dependencies] == ["base", "jetty/[9.0,10.0)"]
    (cfg,) = http.configs
    assert cfg.pid == "org.example.http"
    assert cfg.properties_dict() == {"port": "8181"}
    assert cfg.file == "jetty.xml"
    assert base.version == "0.0.0"
    assert base.boot


def test_name_derived_from_locator():
    repo = parse_repository("file:/srv/repos/cellar-features.yaml", "features: []")
    assert repo.name == "cellar-features"


@pytest.mark.parametrize(
    "locator, expected",
    [
        ("mvn:org.apache.karaf.cellar/apache-karaf-cellar/3.0.0/xml/features", "apache-karaf-cellar-3.0.0"),
        ("https://example.org/repo/features.yml", "features"),
        ("/tmp/plain.yaml", "plain"),
    ],
)
def test_derive_repository_name(locator, expected):
    assert derive_repository_name(locator) == expected


@pytest.mark.parametrize(
    "payload",
    [
        "- just\n- a list\n",
        "features: {}\n",
        "features:\n  - name: a/b\n",
        "features:\n  - name: a\n    version: 1.10\n",
        "features:\n  - name: a\n    version: '1.0'\n  - name: a\n    version: '1.0'\n",
        "features:\n  - name: a\n    configs:\n      - properties: {}\n",
        "features: [\n",
    ],
)
def test_malformed_descriptors(payload):
    with pytest.raises(ParseError) as exc:
        parse_repository("mem:bad", payload)
    assert exc.value.locator == "mem:bad"


@pytest.mark.parametrize(
    "flag, expected",
    [("true", True), ("'false'", False), ("'no'", False), ("'On'", True), ("null", False)],
)
def test_boot_flag_values(flag, expected):
    repo = parse_repository("mem:flags", f"features:\n  - name: a\n    boot: {flag}\n")
    assert repo.features[0].boot is expected


def test_unknown_boot_flag_is_rejected():
    with pytest.raises(ParseError):
        parse_repository("mem:flags", "features:\n  - name: a\n    boot: sometimes\n")
