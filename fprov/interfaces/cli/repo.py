from __future__ import annotations

import argparse
from typing import List

from fprov.services.provisioning.errors import RepositoryBatchError
from fprov.services.provisioning.tables import render_table
from fprov.utils.i18n import _ as _t

from .common import CliContext, print_batch_failure


def cmd_repo_add(argv: List[str], ctx: CliContext) -> int:
    """Register a feature repository."""
    parser = argparse.ArgumentParser(
        prog="fprov repo-add",
        description=_t("Add a feature repository"),
    )
    parser.add_argument("locator", help=_t("Repository locator (path, file:, http(s):, mvn:)"))
    parser.add_argument(
        "-i",
        "--install",
        action="store_true",
        help=_t("Install the boot features of the added repositories"),
    )
    args = parser.parse_args(argv)

    service = ctx.service()
    added = service.add_repository(ctx.subject(), args.locator, install=args.install)
    if not added:
        print(_t("Repository {} is already registered").format(args.locator))
        return 0
    for repo in added:
        print(_t("Adding feature url {}").format(repo.locator))
    return 0


def cmd_repo_remove(argv: List[str], ctx: CliContext) -> int:
    """Remove repositories by locator or regular expression."""
    parser = argparse.ArgumentParser(
        prog="fprov repo-remove",
        description=_t("Remove feature repositories"),
    )
    parser.add_argument("selector", help=_t("Repository locator, name or regular expression"))
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help=_t("Uninstall features provided by the repositories first"),
    )
    args = parser.parse_args(argv)

    removed = ctx.service().remove_repository(ctx.subject(), args.selector, force=args.force)
    for repo in removed:
        print(_t("Removing feature url {}").format(repo.locator))
    return 0


def cmd_repo_refresh(argv: List[str], ctx: CliContext) -> int:
    """Reload repositories by locator or regular expression."""
    parser = argparse.ArgumentParser(
        prog="fprov repo-refresh",
        description=_t("Refresh feature repositories"),
    )
    parser.add_argument("selector", help=_t("Repository locator, name or regular expression"))
    args = parser.parse_args(argv)

    try:
        refreshed = ctx.service().refresh_repository(ctx.subject(), args.selector)
    except RepositoryBatchError as exc:
        for locator in exc.completed:
            print(_t("Refreshing feature url {}").format(locator))
        print_batch_failure(exc)
        return 1
    for repo in refreshed:
        print(_t("Refreshing feature url {}").format(repo.locator))
    return 0


def cmd_repo_list(argv: List[str], ctx: CliContext) -> int:
    """List registered repositories."""
    parser = argparse.ArgumentParser(
        prog="fprov repo-list",
        description=_t("List feature repositories"),
    )
    parser.parse_args(argv)

    rows = [(repo.name, repo.locator) for repo in ctx.service().list_repositories()]
    print(render_table([_t("Repository"), _t("URL")], rows))
    return 0
