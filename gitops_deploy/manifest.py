"""Representation of GitOpsDeployment records and the manifests they apply.

A `GitOpsDeployment` is the desired-state record owned by an external actor.
It points at a git repository, a branch and a path within the repository that
holds plain kubernetes manifests. The engine only ever writes the `status` of
the record.

Manifests found in the repository are modeled as `ManifestObject` values: the
identity fields needed to address the object in the cluster plus the original
document, which is passed through verbatim on write.
"""

import copy
import datetime
from dataclasses import dataclass, field, replace
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "ManifestObject",
    "GitOpsDeployment",
    "DeploymentSpec",
    "DeploymentStatus",
    "Condition",
    "ConditionStatus",
    "DeploymentPhase",
]

_LOGGER = logging.getLogger(__name__)


DEPLOYMENT_GROUP = "gitops.example.com"
DEPLOYMENT_API_VERSION = f"{DEPLOYMENT_GROUP}/v1alpha1"
DEPLOYMENT_KIND = "GitOpsDeployment"
DEPLOYMENT_FINALIZER = f"{DEPLOYMENT_GROUP}/finalizer"
READY_CONDITION = "Ready"

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def now() -> datetime.datetime:
    """Return the current time truncated to the precision stored on the wire."""
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0)


def format_time(value: datetime.datetime | None) -> str | None:
    """Format a timestamp as an RFC 3339 UTC string."""
    if value is None:
        return None
    return value.astimezone(datetime.timezone.utc).strftime(TIME_FORMAT)


def parse_time(value: str | None) -> datetime.datetime | None:
    """Parse an RFC 3339 timestamp as written by the api server."""
    if not value:
        return None
    return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))


def _time_field(alias: str) -> dict[str, Any]:
    return field_options(alias=alias, serialize=format_time, deserialize=parse_time)


class ConditionStatus(StrEnum):
    """Tri-state status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class DeploymentPhase(StrEnum):
    """Lifecycle phase of a GitOpsDeployment, derived from its metadata."""

    ACTIVE = "Active"
    TERMINATING = "Terminating"
    GONE = "Gone"


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class Condition(BaseManifest):
    """Condition records the last known outcome of reconciling a deployment."""

    type: str
    """Type of the condition, e.g. Ready."""

    status: ConditionStatus
    """Whether the condition holds."""

    reason: str
    """Machine readable reason code, e.g. CloneFailed."""

    message: str
    """Human readable detail."""

    last_transition_time: datetime.datetime = field(
        metadata=_time_field("lastTransitionTime")
    )
    """When the condition was written."""


@dataclass
class DeploymentSpec(BaseManifest):
    """Desired state of a GitOpsDeployment."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    """URL of the git repository."""

    branch: str
    """The branch to clone and pull."""

    path: str
    """Directory within the repository that holds the manifests."""

    interval: str
    """How often to reconcile, as a duration string such as 1m or 30s."""


@dataclass
class DeploymentStatus(BaseManifest):
    """Observed state of a GitOpsDeployment, owned by the engine."""

    synced: bool = False
    """True once manifests have been applied successfully."""

    last_sync_time: datetime.datetime | None = field(
        default=None, metadata=_time_field("lastSyncTime")
    )
    """Time of the last successful sync."""

    conditions: list[Condition] = field(default_factory=list)
    """Conditions, at most one of each type."""

    def get_condition(self, condition_type: str) -> Condition | None:
        """Return the condition of the specified type if present."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


@dataclass
class GitOpsDeployment(BaseManifest):
    """A GitOpsDeployment continuously applies manifests from a git repository."""

    kind: ClassVar[str] = DEPLOYMENT_KIND
    """The kind of the object."""

    name: str
    """The name of the deployment, also the identity of its local mirror."""

    namespace: str | None
    """The namespace of the deployment record."""

    spec: DeploymentSpec
    """The desired state."""

    status: DeploymentStatus = field(default_factory=DeploymentStatus)
    """The observed state."""

    resource_version: str | None = None
    """Concurrency token of the record."""

    finalizers: list[str] = field(default_factory=list)
    """Finalizer markers on the record."""

    deletion_timestamp: datetime.datetime | None = None
    """Set by the store when deletion was requested while finalizers remain."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "GitOpsDeployment":
        """Parse a GitOpsDeployment from a kubernetes resource."""
        if doc.get("kind") != DEPLOYMENT_KIND:
            raise InputException(f"Invalid {cls.__name__} kind: {doc.get('kind')}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        try:
            deployment_spec = DeploymentSpec.from_dict(spec)
            status = DeploymentStatus.from_dict(doc.get("status") or {})
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(f"Invalid {cls.__name__} {name}: {err}") from err
        return cls(
            name=name,
            namespace=metadata.get("namespace"),
            spec=deployment_spec,
            status=status,
            resource_version=metadata.get("resourceVersion"),
            finalizers=list(metadata.get("finalizers") or []),
            deletion_timestamp=parse_time(metadata.get("deletionTimestamp")),
        )

    @property
    def resource_id(self) -> NamedResource:
        """Identifier for the record in the store."""
        return NamedResource(self.kind, self.namespace, self.name)

    @property
    def phase(self) -> DeploymentPhase:
        """Lifecycle phase: Active until deletion, Terminating while finalized."""
        if self.deletion_timestamp is None:
            return DeploymentPhase.ACTIVE
        if DEPLOYMENT_FINALIZER in self.finalizers:
            return DeploymentPhase.TERMINATING
        return DeploymentPhase.GONE


@dataclass
class ManifestObject:
    """A schema-less kubernetes object decoded from a manifest file.

    Only the identity and the concurrency token are interpreted, everything
    else in `payload` is forwarded as-is to the store.
    """

    kind: str
    """The kind of the object."""

    api_version: str
    """The apiVersion of the object."""

    name: str
    """The name of the object."""

    namespace: str | None
    """The namespace of the object."""

    resource_version: str | None = None
    """Optimistic concurrency token assigned by the store."""

    payload: dict[str, Any] = field(default_factory=dict)
    """The full document."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ManifestObject":
        """Parse a ManifestObject from a raw kubernetes object."""
        if not isinstance(doc, dict):
            raise InputException(f"Invalid object is not a mapping: {doc}")
        if not (kind := doc.get("kind")):
            raise InputException(f"Invalid object missing kind: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        return cls(
            kind=kind,
            api_version=api_version,
            name=name,
            namespace=metadata.get("namespace"),
            resource_version=metadata.get("resourceVersion"),
            payload=doc,
        )

    @property
    def resource_id(self) -> NamedResource:
        """Identifier for the object in the store."""
        return NamedResource(self.kind, self.namespace, self.name)

    def with_namespace(self, namespace: str) -> "ManifestObject":
        """Return a copy of the object placed in the specified namespace."""
        return replace(self, namespace=namespace)

    def with_resource_version(self, resource_version: str | None) -> "ManifestObject":
        """Return a copy of the object carrying the specified concurrency token."""
        return replace(self, resource_version=resource_version)

    def to_doc(self) -> dict[str, Any]:
        """Return the document to write, with identity fields applied."""
        doc = copy.deepcopy(self.payload)
        doc["apiVersion"] = self.api_version
        doc["kind"] = self.kind
        metadata = doc.setdefault("metadata", {})
        metadata["name"] = self.name
        if self.namespace is not None:
            metadata["namespace"] = self.namespace
        else:
            metadata.pop("namespace", None)
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        else:
            metadata.pop("resourceVersion", None)
        return doc

    def __str__(self) -> str:
        return str(self.resource_id)
