"""Selector resolution shared by repository and feature lookups."""

from __future__ import annotations

import re
from typing import Callable, Iterable, List, Sequence, TypeVar

from .errors import NotFoundError

T = TypeVar("T")

__all__ = ["compile_selector", "select"]


def compile_selector(selector: str) -> re.Pattern[str] | None:
    """Compile ``selector`` as a regular expression, ``None`` if it is invalid."""

    try:
        return re.compile(selector)
    except re.error:
        return None


def select(
    selector: str,
    items: Iterable[T],
    keys: Callable[[T], Sequence[str]],
    *,
    what: str = "item",
) -> List[T]:
    """Return the items addressed by ``selector``.

    An exact match on any key wins outright. Otherwise the selector is treated
    as a regular expression that must match a whole key. Order of ``items`` is
    preserved.

    Raises:
        NotFoundError: If nothing matches.
    """

    candidates = list(items)
    exact = [item for item in candidates if selector in keys(item)]
    if exact:
        return exact

    pattern = compile_selector(selector)
    matched: List[T] = []
    if pattern is not None:
        matched = [
            item
            for item in candidates
            if any(pattern.fullmatch(key) for key in keys(item))
        ]
    if not matched:
        raise NotFoundError(f"No {what} matches '{selector}'")
    return matched
