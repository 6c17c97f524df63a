"""Configuration objects for gitops-deploy."""

import datetime
from dataclasses import dataclass, field
from pathlib import Path
import tempfile


DEFAULT_MIRROR_ROOT = Path(tempfile.gettempdir()) / "gitops-deploy"
DEFAULT_TARGET_NAMESPACE = "default"


@dataclass
class SourceConfig:
    """Configuration for the SourceSynchronizer."""

    mirror_root: Path = field(default_factory=lambda: DEFAULT_MIRROR_ROOT)
    """Directory holding one local mirror per deployment."""

    remote_name: str = "origin"
    """The remote pulled from when a mirror already exists."""

    verify_branch: bool = False
    """Fail a pull when the checked out branch differs from the requested one."""


@dataclass
class ApplierConfig:
    """Configuration for the ManifestApplier."""

    target_namespace: str = DEFAULT_TARGET_NAMESPACE
    """Namespace every manifest is applied to, regardless of its own."""

    extensions: tuple[str, ...] = (".yaml",)
    """File suffixes considered manifests, matched case-sensitively."""

    strict_decode: bool = False
    """Treat a malformed document as an error instead of the end of the file."""

    tolerate_missing: bool = False
    """Treat deleting an object that no longer exists as success."""


@dataclass
class ControllerConfig:
    """Configuration for the ReconciliationController."""

    source: SourceConfig = field(default_factory=SourceConfig)
    applier: ApplierConfig = field(default_factory=ApplierConfig)

    enable_finalizers: bool = False
    """Add a finalizer to deployments and clean up when they are deleted."""


@dataclass
class ManagerConfig:
    """Configuration for the Manager running reconcile workers."""

    workers: int = 2
    """Number of cycles that may run concurrently for distinct deployments."""

    resync_period: datetime.timedelta | None = None
    """How often to list all deployments for stores that do not push events."""

    base_delay: datetime.timedelta = datetime.timedelta(milliseconds=5)
    """First retry delay after a failed cycle, doubled on each failure."""

    max_delay: datetime.timedelta = datetime.timedelta(seconds=1000)
    """Upper bound for the retry delay."""
