"""Plain-text tables for CLI listings."""

from __future__ import annotations

from typing import List, Sequence

__all__ = ["render_table"]


def render_table(headers: Sequence[str], rows: Sequence[Sequence[object]]) -> str:
    """Render ``rows`` under ``headers`` with `` | `` separated columns.

    The header and its ``-+-`` separator are always emitted, even without rows.
    """

    cells = [[str(c) if c is not None else "" for c in row] for row in rows]
    widths = [len(h) for h in headers]
    for row in cells:
        for i, cell in enumerate(row[: len(widths)]):
            widths[i] = max(widths[i], len(cell))

    def line(values: Sequence[str]) -> str:
        padded = [values[i].ljust(widths[i]) if i < len(values) else " " * widths[i] for i in range(len(widths))]
        return " | ".join(padded).rstrip()

    out: List[str] = [line(list(headers)), "-+-".join("-" * w for w in widths)]
    out.extend(line(row) for row in cells)
    return "\n".join(out)
