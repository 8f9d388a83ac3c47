from __future__ import annotations

import argparse
from typing import List

from fprov.services.provisioning.tables import render_table
from fprov.utils.i18n import _ as _t

from .common import CliContext, enable_verbose, print_report


def _refs_parser(prog: str, description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument("features", nargs="+", help=_t("Feature references (name or name/version)"))
    parser.add_argument(
        "-r",
        "--no-auto-refresh",
        action="store_true",
        help=_t("Do not refresh modules shared with other features"),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help=_t("Explain what is being done"),
    )
    return parser


def cmd_feature_install(argv: List[str], ctx: CliContext) -> int:
    """Install features and their dependencies."""
    parser = _refs_parser("fprov feature-install", _t("Install features"))
    args = parser.parse_args(argv)
    enable_verbose(args.verbose)

    report = ctx.service().install_feature(
        ctx.subject(),
        args.features,
        no_auto_refresh=args.no_auto_refresh,
        verbose=args.verbose,
    )
    if args.verbose:
        print_report(report)
    return 0


def cmd_feature_uninstall(argv: List[str], ctx: CliContext) -> int:
    """Uninstall explicitly installed features."""
    parser = _refs_parser("fprov feature-uninstall", _t("Uninstall features"))
    parser.add_argument(
        "-c",
        "--delete-config",
        action="store_true",
        help=_t("Delete the configuration created by the features"),
    )
    args = parser.parse_args(argv)
    enable_verbose(args.verbose)

    report = ctx.service().uninstall_feature(
        ctx.subject(),
        args.features,
        delete_config=args.delete_config,
        no_auto_refresh=args.no_auto_refresh,
        verbose=args.verbose,
    )
    if args.verbose:
        print_report(report)
    return 0


def cmd_feature_upgrade(argv: List[str], ctx: CliContext) -> int:
    """Upgrade installed features to a newer version."""
    parser = _refs_parser("fprov feature-upgrade", _t("Upgrade features"))
    args = parser.parse_args(argv)
    enable_verbose(args.verbose)

    report = ctx.service().upgrade_feature(
        ctx.subject(),
        args.features,
        no_auto_refresh=args.no_auto_refresh,
        verbose=args.verbose,
    )
    if args.verbose:
        print_report(report)
    return 0


def cmd_feature_list(argv: List[str], ctx: CliContext) -> int:
    """List available features."""
    parser = argparse.ArgumentParser(
        prog="fprov feature-list",
        description=_t("List features with their state"),
    )
    parser.add_argument(
        "-i",
        "--installed",
        action="store_true",
        help=_t("Only list installed features"),
    )
    parser.add_argument("--repository", default=None, help=_t("Only list features of this repository"))
    args = parser.parse_args(argv)

    entries = ctx.service().list_features(
        installed_only=args.installed, repository=args.repository
    )
    rows = [
        (
            e.feature.name,
            e.feature.version,
            "x" if e.required else "",
            e.state.value,
            e.repository_name,
            e.feature.description,
        )
        for e in entries
    ]
    headers = [
        _t("Name"),
        _t("Version"),
        _t("Required"),
        _t("State"),
        _t("Repository"),
        _t("Description"),
    ]
    print(render_table(headers, rows))
    return 0


def cmd_feature_version_list(argv: List[str], ctx: CliContext) -> int:
    """List every version of matching features."""
    parser = argparse.ArgumentParser(
        prog="fprov feature-version-list",
        description=_t("List the available versions of features"),
    )
    parser.add_argument("selector", help=_t("Feature name or regular expression"))
    args = parser.parse_args(argv)

    entries = ctx.service().version_list(args.selector)
    rows = [
        (e.feature.version, e.repository_name, e.repository_locator, e.state.value)
        for e in entries
    ]
    headers = [_t("Version"), _t("Repository"), _t("Repository URL"), _t("State")]
    print(render_table(headers, rows))
    return 0


def cmd_feature_status(argv: List[str], ctx: CliContext) -> int:
    """Print the lifecycle state of a feature."""
    parser = argparse.ArgumentParser(
        prog="fprov feature-status",
        description=_t("Show the state of a feature"),
    )
    parser.add_argument("feature", help=_t("Feature reference (name or name/version)"))
    args = parser.parse_args(argv)

    print(ctx.service().feature_status(args.feature).value)
    return 0


def cmd_bootstrap(argv: List[str], ctx: CliContext) -> int:
    """Load configured repositories and install boot features."""
    parser = argparse.ArgumentParser(
        prog="fprov bootstrap",
        description=_t("Install boot features"),
    )
    parser.add_argument("-v", "--verbose", action="store_true", help=_t("Explain what is being done"))
    args = parser.parse_args(argv)
    enable_verbose(args.verbose)

    report = ctx.service().bootstrap(ctx.subject())
    print_report(report)
    return 0
