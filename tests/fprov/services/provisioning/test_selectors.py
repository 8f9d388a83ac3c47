from __future__ import annotations

import pytest

from fprov.services.provisioning.errors import NotFoundError
from fprov.services.provisioning.selectors import select

ITEMS = ["mvn:org.apache/apache-karaf-cellar/3.0.0", "mvn:org.apache/pax-web/4.0.0", "a+b"]


def _keys(item):
    return (item,)


def test_exact_match_wins():
    assert select(ITEMS[1], ITEMS, _keys) == [ITEMS[1]]


def test_regex_must_match_whole_key():
    assert select(".*apache-karaf-cellar.*", ITEMS, _keys) == [ITEMS[0]]
    with pytest.raises(NotFoundError):
        select("apache-karaf", ITEMS, _keys)


def test_regex_metacharacters_match_literally_when_exact():
    assert select("a+b", ITEMS, _keys) == ["a+b"]


def test_invalid_regex_reports_not_found():
    with pytest.raises(NotFoundError) as exc:
        select("[unclosed", ITEMS, _keys, what="repository")
    assert "repository" in str(exc.value)
