from __future__ import annotations

"""Idempotent Prometheus metric registration.

Creating engines repeatedly (tests, several services per process) must not
trip over duplicate registrations in the shared registry, so every metric is
fetched-or-created through this module. A registry-aware reset helper keeps
tests independent of Prometheus internals.
"""

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Dict, Tuple, TypeVar

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    REGISTRY as global_registry,
)
from prometheus_client.metrics import MetricWrapperBase

__all__ = [
    "get_or_create_counter",
    "get_or_create_gauge",
    "get_metric_value",
    "reset_metrics",
]

MetricT = TypeVar("MetricT", bound=MetricWrapperBase)
RegistryKey = Tuple[CollectorRegistry, str]

_METRIC_CACHE: Dict[RegistryKey, MetricWrapperBase] = {}
_RESET_CALLBACKS: Dict[RegistryKey, Callable[[], None]] = {}


def get_or_create_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> Counter:
    """Return an existing counter or register a new one."""

    reg = registry or global_registry
    metric = _get_or_create_metric(Counter, name, documentation, labelnames, registry=reg)
    _register_reset(metric, reg, name)
    return metric


def get_or_create_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> Gauge:
    """Return an existing gauge or register a new one."""

    reg = registry or global_registry
    metric = _get_or_create_metric(Gauge, name, documentation, labelnames, registry=reg)
    _register_reset(metric, reg, name)
    return metric


def reset_metrics(
    names: Iterable[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
) -> None:
    """Reset registered metrics; every metric of ``registry`` when ``names`` is ``None``."""

    reg = registry or global_registry
    if names is None:
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg]
    else:
        requested = set(names)
        keys = [key for key in _RESET_CALLBACKS if key[0] is reg and key[1] in requested]
    for key in keys:
        _RESET_CALLBACKS[key]()


def get_metric_value(
    metric: MetricWrapperBase, labels: Mapping[str, str] | None = None
) -> float:
    """Return the most recent sample value for ``metric``.

    When ``labels`` are provided the matching labelled sample is returned,
    otherwise the first unlabelled sample is used.
    """

    expected = dict(labels) if labels is not None else None
    for family in metric.collect():
        for sample in family.samples:
            if sample.name.endswith("_created"):
                continue
            if expected is None and sample.labels:
                continue
            if expected is not None and sample.labels != expected:
                continue
            return float(sample.value)
    return 0.0


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_or_create_metric(
    metric_cls: type[MetricT],
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None,
    *,
    registry: CollectorRegistry,
) -> MetricT:
    labels = tuple(labelnames or ())
    cache_key = (registry, name)
    cached = _METRIC_CACHE.get(cache_key)
    if cached is not None:
        if isinstance(cached, metric_cls) and _labels_match(cached, labels):
            return cached  # type: ignore[return-value]
        registry.unregister(cached)
        _METRIC_CACHE.pop(cache_key, None)

    existing = _lookup_metric(registry, name)
    if existing is not None:
        if not isinstance(existing, metric_cls):
            raise TypeError(
                f"Metric '{name}' already registered with incompatible type {type(existing)!r}"
            )
        if not _labels_match(existing, labels):
            registry.unregister(existing)
            existing = None
    metric = existing if existing is not None else metric_cls(
        name, documentation, labels, registry=registry
    )
    _METRIC_CACHE[cache_key] = metric
    return metric  # type: ignore[return-value]


def _register_reset(metric: MetricWrapperBase, registry: CollectorRegistry, name: str) -> None:
    def _reset() -> None:
        if getattr(metric, "_labelnames", ()):
            metric.clear()
        elif isinstance(metric, Counter):
            metric._value.set(0)  # type: ignore[attr-defined]
        elif isinstance(metric, Gauge):
            metric.set(0)

    _RESET_CALLBACKS[(registry, name)] = _reset


def _lookup_metric(registry: CollectorRegistry, name: str) -> MetricWrapperBase | None:
    collectors = getattr(registry, "_names_to_collectors", {})
    return collectors.get(name)


def _labels_match(metric: MetricWrapperBase, expected: Sequence[str]) -> bool:
    return tuple(getattr(metric, "_labelnames", ())) == tuple(expected)
