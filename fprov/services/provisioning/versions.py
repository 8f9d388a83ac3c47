"""Version ordering and version range matching for feature references."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Tuple

__all__ = ["Version", "VersionRange", "ANY_VERSION", "DEFAULT_VERSION"]

DEFAULT_VERSION = "0.0.0"

_SEGMENT_SPLIT = re.compile(r"[.\-_]")

# (kind, numeric value, text value); numeric segments sort before text ones
_Segment = Tuple[int, int, str]


def _segments(raw: str) -> tuple[_Segment, ...]:
    parts: list[_Segment] = []
    for token in _SEGMENT_SPLIT.split(raw.strip()):
        if token == "":
            continue
        if token.isdigit():
            parts.append((0, int(token), ""))
        else:
            parts.append((1, 0, token))
    while parts and parts[-1] == (0, 0, ""):
        parts.pop()
    return tuple(parts)


@total_ordering
@dataclass(frozen=True)
class Version:
    """A version string with a deterministic total order.

    Segments are separated by ``.``, ``-`` or ``_``. Numeric segments compare
    numerically and text segments lexically. Trailing zero segments carry no
    weight, so ``1.0`` and ``1.0.0`` are equal; the raw string breaks that tie
    when sorting so the order stays total.
    """

    raw: str
    key: tuple[_Segment, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "key", _segments(self.raw))

    @classmethod
    def parse(cls, value: "str | Version | None") -> "Version":
        if isinstance(value, Version):
            return value
        text = (value or "").strip() or DEFAULT_VERSION
        return cls(text)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.key < other.key

    def sort_key(self) -> tuple[tuple[_Segment, ...], str]:
        return (self.key, self.raw)

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True)
class VersionRange:
    """An interval of versions.

    ``None``/empty/``0.0.0`` accepts anything, a bare version accepts exactly
    that version and bracket notation (``[1.0,2.0)``) describes an interval
    whose upper bound may be omitted (``[1.0,)``).
    """

    floor: Version | None = None
    ceiling: Version | None = None
    include_floor: bool = True
    include_ceiling: bool = True
    text: str = ""

    @classmethod
    def parse(cls, value: str | None) -> "VersionRange":
        text = (value or "").strip()
        if not text or text == DEFAULT_VERSION:
            return ANY_VERSION
        if text[0] in "[(":
            if text[-1] not in "])":
                raise ValueError(f"Invalid version range: {text!r}")
            body = text[1:-1]
            if "," not in body:
                raise ValueError(f"Invalid version range: {text!r}")
            low, high = (part.strip() for part in body.split(",", 1))
            return cls(
                floor=Version.parse(low) if low else None,
                ceiling=Version.parse(high) if high else None,
                include_floor=text[0] == "[",
                include_ceiling=text[-1] == "]",
                text=text,
            )
        exact = Version.parse(text)
        return cls(floor=exact, ceiling=exact, text=text)

    @property
    def is_any(self) -> bool:
        return self.floor is None and self.ceiling is None

    @property
    def is_exact(self) -> bool:
        return (
            self.floor is not None
            and self.floor == self.ceiling
            and self.include_floor
            and self.include_ceiling
        )

    def contains(self, version: "Version | str") -> bool:
        candidate = Version.parse(version)
        if self.floor is not None:
            if candidate < self.floor:
                return False
            if candidate == self.floor and not self.include_floor:
                return False
        if self.ceiling is not None:
            if candidate > self.ceiling:
                return False
            if candidate == self.ceiling and not self.include_ceiling:
                return False
        return True

    def __str__(self) -> str:
        return self.text or "*"


ANY_VERSION = VersionRange()
