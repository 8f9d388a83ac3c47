"""Feature provisioning engine.

Repositories are fetched and parsed into immutable feature definitions, a
dependency resolver expands requested features into an install plan, and the
lifecycle applies that plan to a module runtime while keeping configuration
artifacts in step.
"""

from __future__ import annotations

from .auth import AuthorizationPolicy, Subject
from .catalog import CatalogEntry, FeatureCatalog
from .config_manager import ConfigLifecycleManager
from .dependencies import DependencyResolver, InstallationPlan
from .descriptor import derive_repository_name, parse_repository
from .errors import (
    AuthorizationError,
    CyclicDependencyError,
    FetchError,
    InUseError,
    ModuleActivationError,
    NotFoundError,
    NotInstalledError,
    ParseError,
    ProvisioningError,
    RepositoryBatchError,
    TransitionError,
    UpgradeFailedError,
    VersionConflictError,
)
from .lifecycle import FEATURE_TRANSITIONS, FeatureLifecycle, next_state
from .models import (
    ConfigArtifact,
    ConfigArtifactSpec,
    Feature,
    FeatureKey,
    FeatureRef,
    FeatureState,
    InstalledFeatureRecord,
    OperationReport,
    Repository,
)
from .repository_store import RepositoryStore
from .resolvers import (
    CompositeResolver,
    FileResolver,
    HttpResolver,
    LocatorResolver,
    MavenResolver,
    MemoryResolver,
    default_resolver,
)
from .runtime import InMemoryModuleRuntime, ModuleRuntime, load_module_runtime
from .selectors import select
from .service import FeaturesService, build_service
from .state import FeatureStateStore
from .tables import render_table
from .versions import Version, VersionRange

__all__ = [
    "AuthorizationPolicy",
    "Subject",
    "CatalogEntry",
    "FeatureCatalog",
    "ConfigLifecycleManager",
    "DependencyResolver",
    "InstallationPlan",
    "derive_repository_name",
    "parse_repository",
    "AuthorizationError",
    "CyclicDependencyError",
    "FetchError",
    "InUseError",
    "ModuleActivationError",
    "NotFoundError",
    "NotInstalledError",
    "ParseError",
    "ProvisioningError",
    "RepositoryBatchError",
    "TransitionError",
    "UpgradeFailedError",
    "VersionConflictError",
    "FEATURE_TRANSITIONS",
    "FeatureLifecycle",
    "next_state",
    "ConfigArtifact",
    "ConfigArtifactSpec",
    "Feature",
    "FeatureKey",
    "FeatureRef",
    "FeatureState",
    "InstalledFeatureRecord",
    "OperationReport",
    "Repository",
    "RepositoryStore",
    "CompositeResolver",
    "FileResolver",
    "HttpResolver",
    "LocatorResolver",
    "MavenResolver",
    "MemoryResolver",
    "default_resolver",
    "InMemoryModuleRuntime",
    "ModuleRuntime",
    "load_module_runtime",
    "select",
    "FeaturesService",
    "build_service",
    "FeatureStateStore",
    "render_table",
    "Version",
    "VersionRange",
]
