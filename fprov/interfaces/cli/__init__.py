"""Top level command line interface for fprov."""

from __future__ import annotations

from fprov.interfaces.cli.app import COMMANDS, main

__all__ = ["COMMANDS", "main"]


if __name__ == "__main__":  # pragma: no cover - CLI entry
    main()
