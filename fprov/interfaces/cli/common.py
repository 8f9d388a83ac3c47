from __future__ import annotations

import getpass
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, List

from fprov.foundation.config import (
    ProvisioningConfig,
    find_config_file,
    load_provisioning_config,
)
from fprov.services.provisioning.auth import Subject
from fprov.services.provisioning.errors import RepositoryBatchError
from fprov.services.provisioning.models import OperationReport
from fprov.services.provisioning.service import FeaturesService, build_service
from fprov.utils.i18n import _ as _t


@dataclass
class CliContext:
    """Global options shared by every command."""

    config_path: str | None = None
    roles: List[str] = field(default_factory=list)
    _config: ProvisioningConfig | None = field(default=None, repr=False)
    _service: FeaturesService | None = field(default=None, repr=False)

    def config(self) -> ProvisioningConfig:
        if self._config is None:
            path = self.config_path or find_config_file()
            self._config = load_provisioning_config(path)
        return self._config

    def service(self) -> FeaturesService:
        if self._service is None:
            self._service = build_service(self.config())
            self._service.load_repositories()
        return self._service

    def subject(self) -> Subject:
        roles = self.roles or self.config().default_roles
        try:
            user = getpass.getuser()
        except (KeyError, OSError):
            user = "cli"
        return Subject.of(user, roles)


CommandHandler = Callable[[List[str], CliContext], int]


def enable_verbose(verbose: bool) -> None:
    if verbose:
        logging.getLogger("fprov").setLevel(logging.INFO)


def print_report(report: OperationReport) -> None:
    for feature in report.installed:
        print(_t("Installed feature {}").format(feature))
    for feature in report.uninstalled:
        print(_t("Uninstalled feature {}").format(feature))
    for module in report.started_modules:
        print(_t("Started module {}").format(module))
    for module in report.stopped_modules:
        print(_t("Stopped module {}").format(module))
    for module in report.refreshed_modules:
        print(_t("Refreshed module {}").format(module))
    for pid in report.created_configs:
        print(_t("Created configuration {}").format(pid))
    for pid in report.deleted_configs:
        print(_t("Deleted configuration {}").format(pid))
    if not report.changed:
        print(_t("No changes"))


def print_batch_failure(error: RepositoryBatchError) -> None:
    for locator, cause in error.failures.items():
        print(_t("Error: {}: {}").format(locator, cause), file=sys.stderr)
