"""Tests for dependency resolution."""

from __future__ import annotations

from typing import List

import pytest

from fprov.services.provisioning.dependencies import DependencyResolver
from fprov.services.provisioning.errors import (
    CyclicDependencyError,
    NotFoundError,
    VersionConflictError,
)
from fprov.services.provisioning.models import Feature, FeatureKey, FeatureRef
from fprov.services.provisioning.versions import Version


def _feature(name, version="1.0", *, modules=(), deps=()):
    return Feature(
        name=name,
        version=version,
        modules=tuple(modules),
        dependencies=tuple(FeatureRef.parse(d) for d in deps),
    )


def _lookup(features: List[Feature]):
    def lookup(ref: FeatureRef) -> List[Feature]:
        found = [f for f in features if ref.matches(f.key)]
        return sorted(found, key=lambda f: Version(f.version).sort_key(), reverse=True)

    return lookup


def test_transitive_closure_in_dependency_order():
    base = _feature("base", modules=["m:base"])
    mid = _feature("mid", modules=["m:mid", "m:base"], deps=["base"])
    top = _feature("top", modules=["m:top"], deps=["mid", "base"])

    plan = DependencyResolver().plan([top], _lookup([base, mid, top]))

    assert [f.name for f in plan.features] == ["base", "mid", "top"]
    assert plan.modules == ["m:base", "m:mid", "m:top"]
    assert plan.dependencies_of(top.key) == [base.key, mid.key]
    assert sorted(str(k) for k in plan.module_owners("m:base")) == ["base/1.0", "mid/1.0"]


def test_shared_dependency_selected_once():
    shared = _feature("shared", modules=["m:shared"])
    a = _feature("a", deps=["shared"])
    b = _feature("b", deps=["shared"])

    plan = DependencyResolver().plan([a, b], _lookup([shared, a, b]))

    assert [f.name for f in plan.features].count("shared") == 1
    assert plan.modules == ["m:shared"]


def test_highest_matching_version_is_chosen():
    features = [_feature("lib", "1.0"), _feature("lib", "1.2"), _feature("lib", "1.1"), _feature("app", deps=["lib"])]
    plan = DependencyResolver().plan([features[-1]], _lookup(features))
    assert plan.feature(FeatureKey("lib", "1.2")).version == "1.2"


def test_preferred_version_wins_over_highest():
    features = [_feature("lib", "1.0"), _feature("lib", "2.0"), _feature("app", deps=["lib/[1.0,3.0)"])]
    plan = DependencyResolver().plan(
        [features[-1]], _lookup(features), preferred=[FeatureKey("lib", "1.0")]
    )
    assert FeatureKey("lib", "1.0") in plan.keys()
    assert FeatureKey("lib", "2.0") not in plan.keys()


def test_cycle_is_rejected():
    a = _feature("a", deps=["b"])
    b = _feature("b", deps=["c"])
    c = _feature("c", deps=["a"])

    with pytest.raises(CyclicDependencyError) as exc:
        DependencyResolver().plan([a], _lookup([a, b, c]))

    assert set(exc.value.cycle) == {"a/1.0", "b/1.0", "c/1.0"}


def test_two_versions_of_one_name_conflict():
    lib1 = _feature("lib", "1.0")
    lib2 = _feature("lib", "2.0")
    x = _feature("x", deps=["lib/1.0"])
    y = _feature("y", deps=["lib/2.0"])

    with pytest.raises(VersionConflictError) as exc:
        DependencyResolver().plan([x, y], _lookup([lib1, lib2, x, y]))

    assert exc.value.name == "lib"
    assert exc.value.versions == ("1.0", "2.0")


def test_side_by_side_allows_two_versions():
    lib1 = _feature("lib", "1.0", modules=["m:lib1"])
    lib2 = _feature("lib", "2.0", modules=["m:lib2"])
    x = _feature("x", deps=["lib/1.0"])
    y = _feature("y", deps=["lib/2.0"])

    plan = DependencyResolver(allow_side_by_side=True).plan([x, y], _lookup([lib1, lib2, x, y]))

    assert {lib1.key, lib2.key} <= plan.keys()


def test_missing_dependency():
    app = _feature("app", deps=["ghost"])
    with pytest.raises(NotFoundError, match="ghost"):
        DependencyResolver().plan([app], _lookup([app]))


def test_uninstall_order_keeps_shared_nodes():
    shared = _feature("shared")
    a = _feature("a", deps=["shared"])
    b = _feature("b", deps=["shared"])
    plan = DependencyResolver().plan([a, b], _lookup([shared, a, b]))

    removable = plan.uninstall_order(keep=[b.key])

    assert [f.name for f in removable] == ["a"]
