"""fprov command-line interface.

Repository commands:
  repo-add, repo-remove, repo-refresh, repo-list

Feature commands:
  feature-install, feature-uninstall, feature-upgrade, feature-list,
  feature-version-list, feature-status, bootstrap
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
from typing import List

from fprov.services.provisioning.errors import ProvisioningError
from fprov.utils.i18n import set_language
from fprov.utils.i18n import _ as _t  # Alias to avoid shadowing in loops

from .common import CliContext, CommandHandler
from .feature import (
    cmd_bootstrap,
    cmd_feature_install,
    cmd_feature_list,
    cmd_feature_status,
    cmd_feature_uninstall,
    cmd_feature_upgrade,
    cmd_feature_version_list,
)
from .repo import cmd_repo_add, cmd_repo_list, cmd_repo_refresh, cmd_repo_remove

COMMANDS: dict[str, CommandHandler] = {
    "repo-add": cmd_repo_add,
    "repo-remove": cmd_repo_remove,
    "repo-refresh": cmd_repo_refresh,
    "repo-list": cmd_repo_list,
    "feature-install": cmd_feature_install,
    "feature-uninstall": cmd_feature_uninstall,
    "feature-upgrade": cmd_feature_upgrade,
    "feature-list": cmd_feature_list,
    "feature-version-list": cmd_feature_version_list,
    "feature-status": cmd_feature_status,
    "bootstrap": cmd_bootstrap,
}


def _build_top_help_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fprov",
        description=_t("Feature provisioning command line interface"),
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.description = textwrap.dedent(_t("""
        Available commands:
          repo-add              Add a feature repository
          repo-remove           Remove feature repositories
          repo-refresh          Refresh feature repositories
          repo-list             List feature repositories
          feature-install       Install features
          feature-uninstall     Uninstall features
          feature-upgrade       Upgrade features
          feature-list          List features with their state
          feature-version-list  List the available versions of features
          feature-status        Show the state of a feature
          bootstrap             Install boot features

        Global options (before the command):
          --config PATH   Configuration file (default: ./fprov.yml)
          --role ROLE     Role of the caller; repeatable
          --lang LANG     Message language
    """))
    parser.add_argument("command", nargs="?", help=_t("Command to run"))
    return parser


def _extract_lang(argv: List[str]) -> tuple[List[str], str | None]:
    """Extract --lang/-L from argv; return (rest, lang)."""
    rest: List[str] = []
    lang: str | None = None
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok.startswith("--lang="):
            lang = tok.split("=", 1)[1]
            i += 1
            continue
        if tok == "--lang" or tok == "-L":
            if i + 1 < len(argv):
                lang = argv[i + 1]
                i += 2
                continue
            i += 1
            continue
        rest.append(tok)
        i += 1
    return rest, lang


def _extract_globals(argv: List[str]) -> tuple[List[str], CliContext]:
    """Consume --config/--role options that precede the command."""
    ctx = CliContext()
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok.startswith("--config="):
            ctx.config_path = tok.split("=", 1)[1]
            i += 1
        elif tok.startswith("--role="):
            ctx.roles.append(tok.split("=", 1)[1])
            i += 1
        elif tok in ("--config", "--role") and i + 1 < len(argv):
            if tok == "--config":
                ctx.config_path = argv[i + 1]
            else:
                ctx.roles.append(argv[i + 1])
            i += 2
        else:
            break
    return argv[i:], ctx


def main(argv: List[str] | None = None) -> int:
    """Main CLI entry point."""
    argv = list(argv) if argv is not None else sys.argv[1:]
    argv, lang = _extract_lang(argv)
    set_language(lang)
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    argv, ctx = _extract_globals(argv)
    if not argv or argv[0] in {"-h", "--help"}:
        _build_top_help_parser().print_help()
        return 0

    cmd, rest = argv[0], argv[1:]
    if cmd not in COMMANDS:
        return _unknown_command(cmd)
    return _dispatch_command(COMMANDS[cmd], rest, ctx)


def _dispatch_command(handler: CommandHandler, rest: List[str], ctx: CliContext) -> int:
    try:
        return handler(rest, ctx)
    except KeyboardInterrupt:
        print(_t("\nInterrupted"), file=sys.stderr)
        return 130
    except ProvisioningError as e:
        print(_t("Error: {}").format(str(e)), file=sys.stderr)
        return 1
    except (OSError, TypeError, ValueError) as e:
        print(_t("Error: {}").format(str(e)), file=sys.stderr)
        return 1


def _unknown_command(cmd: str) -> int:
    print(_t("Error: Unknown command '{}'").format(cmd), file=sys.stderr)
    print(_t("Run 'fprov --help' for available commands."), file=sys.stderr)
    return 2


if __name__ == "__main__":
    sys.exit(main())
