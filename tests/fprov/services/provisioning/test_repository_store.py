"""Tests for the repository store."""

from __future__ import annotations

import pytest

from fprov.services.provisioning.errors import FetchError, NotFoundError, ParseError
from fprov.services.provisioning.repository_store import RepositoryStore


def test_add_registers_imports_in_order(resolver, make_repo):
    make_repo("mem:base", [{"name": "base", "version": "1.0"}])
    make_repo("mem:top", [{"name": "top", "version": "1.0"}], imports=["mem:base"])
    store = RepositoryStore(resolver)

    added = store.add("mem:top")

    assert [r.locator for r in added] == ["mem:top", "mem:base"]
    assert store.locators() == ["mem:top", "mem:base"]


def test_add_known_locator_is_noop(resolver, make_repo):
    make_repo("mem:a", [{"name": "a", "version": "1.0"}])
    store = RepositoryStore(resolver)
    store.add("mem:a")
    assert store.add("mem:a") == []
    assert len(store.list()) == 1


def test_add_is_all_or_nothing(resolver, make_repo):
    make_repo("mem:top", [{"name": "top"}], imports=["mem:missing"])
    store = RepositoryStore(resolver)

    with pytest.raises(FetchError) as exc:
        store.add("mem:top")

    assert exc.value.locator == "mem:missing"
    assert store.list() == []


def test_add_malformed_descriptor(resolver):
    resolver.put("mem:bad", "features: 3")
    store = RepositoryStore(resolver)
    with pytest.raises(ParseError):
        store.add("mem:bad")
    assert not store.contains("mem:bad")


def test_match_by_name_or_locator(resolver, make_repo):
    make_repo("mem:one", [], name="cellar-3.0.0")
    make_repo("mem:two", [], name="web-4.0.0")
    store = RepositoryStore(resolver)
    store.add("mem:one")
    store.add("mem:two")

    assert [r.locator for r in store.match("cellar-3.0.0")] == ["mem:one"]
    assert [r.locator for r in store.match("mem:.*")] == ["mem:one", "mem:two"]
    with pytest.raises(NotFoundError):
        store.match("nothing")


def test_refresh_replaces_definitions_and_keeps_failures(resolver, make_repo):
    make_repo("mem:good", [{"name": "a", "version": "1.0"}])
    make_repo("mem:broken", [{"name": "b", "version": "1.0"}])
    store = RepositoryStore(resolver)
    store.add("mem:good")
    store.add("mem:broken")

    make_repo("mem:good", [{"name": "a", "version": "1.0"}, {"name": "a", "version": "2.0"}])
    resolver.put("mem:broken", "features: [")
    refreshed, failures = store.refresh(store.list())

    assert [r.locator for r in refreshed] == ["mem:good"]
    assert list(failures) == ["mem:broken"]
    assert isinstance(failures["mem:broken"], ParseError)
    assert [f.version for f in store.get("mem:good").features] == ["1.0", "2.0"]
    assert [f.version for f in store.get("mem:broken").features] == ["1.0"]


def test_remove(resolver, make_repo):
    make_repo("mem:a", [])
    store = RepositoryStore(resolver)
    store.add("mem:a")
    removed = store.remove(["mem:a", "mem:unknown"])
    assert [r.locator for r in removed] == ["mem:a"]
    with pytest.raises(NotFoundError):
        store.get("mem:a")
