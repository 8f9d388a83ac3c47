"""Prometheus metrics for provisioning operations."""

from __future__ import annotations

from fprov.foundation.common.metrics_factory import (
    get_or_create_counter,
    get_or_create_gauge,
    reset_metrics,
)

feature_operations_total = get_or_create_counter(
    "fprov_feature_operations_total",
    "Feature install/uninstall/upgrade requests by outcome",
    ["operation", "outcome"],
)

repository_operations_total = get_or_create_counter(
    "fprov_repository_operations_total",
    "Repository add/remove/refresh requests by outcome",
    ["operation", "outcome"],
)

installed_features = get_or_create_gauge(
    "fprov_installed_features",
    "Number of features currently installed",
)

started_modules = get_or_create_gauge(
    "fprov_started_modules",
    "Number of modules currently started by the engine",
)


def record_feature_operation(operation: str, outcome: str) -> None:
    feature_operations_total.labels(operation=operation, outcome=outcome).inc()


def record_repository_operation(operation: str, outcome: str) -> None:
    repository_operations_total.labels(operation=operation, outcome=outcome).inc()


def reset() -> None:
    """Reset all provisioning metrics; intended for tests."""
    reset_metrics(
        [
            "fprov_feature_operations_total",
            "fprov_repository_operations_total",
            "fprov_installed_features",
            "fprov_started_modules",
        ]
    )


__all__ = [
    "feature_operations_total",
    "repository_operations_total",
    "installed_features",
    "started_modules",
    "record_feature_operation",
    "record_repository_operation",
    "reset",
]
