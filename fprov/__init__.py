"""Public API surface for the fprov package."""

from __future__ import annotations

from fprov.services.provisioning import (
    FeaturesService,
    FeatureState,
    ProvisioningError,
    Subject,
    build_service,
)

__all__ = [
    "FeaturesService",
    "FeatureState",
    "ProvisioningError",
    "Subject",
    "build_service",
]
