"""Tests for version ordering and ranges."""

from __future__ import annotations

import pytest

from fprov.services.provisioning.versions import ANY_VERSION, Version, VersionRange


def test_numeric_segments_compare_numerically():
    assert Version("1.10") > Version("1.9")
    assert Version("2.0.0") > Version("1.99.99")


def test_trailing_zeros_are_insignificant():
    assert Version("1.0") == Version("1.0.0")
    assert hash(Version("1")) == hash(Version("1.0.0"))


def test_numeric_sorts_before_text_at_same_position():
    assert Version("1.0.1") < Version("1.0.beta")
    assert Version("1.0-SNAPSHOT") > Version("1.0.0")


def test_highest_of_unordered_versions():
    versions = [Version("1.0"), Version("1.2"), Version("1.1")]
    assert max(versions).raw == "1.2"


def test_sort_key_is_total():
    ordered = sorted(["1.0.0", "1.0", "1"], key=lambda v: Version(v).sort_key())
    assert ordered == ["1", "1.0", "1.0.0"]


class TestVersionRange:
    """Tests for VersionRange parsing and matching."""

    @pytest.mark.parametrize("text", [None, "", "0.0.0"])
    def test_any(self, text):
        rng = VersionRange.parse(text)
        assert rng is ANY_VERSION
        assert rng.contains("42.0")

    def test_bare_version_is_exact(self):
        rng = VersionRange.parse("1.1")
        assert rng.is_exact
        assert rng.contains("1.1.0")
        assert not rng.contains("1.2")

    def test_half_open_interval(self):
        rng = VersionRange.parse("[1.0,2.0)")
        assert rng.contains("1.0")
        assert rng.contains("1.9.9")
        assert not rng.contains("2.0")
        assert not rng.contains("0.9")

    def test_open_upper_bound(self):
        rng = VersionRange.parse("(1.0,)")
        assert not rng.contains("1.0")
        assert rng.contains("100")

    @pytest.mark.parametrize("text", ["[1.0", "[1.0]", "(1.0"])
    def test_malformed(self, text):
        with pytest.raises(ValueError):
            VersionRange.parse(text)
