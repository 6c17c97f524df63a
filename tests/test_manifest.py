"""Tests for manifest library."""

import datetime
from typing import Any

import pytest

from gitops_deploy.exceptions import InputException
from gitops_deploy.manifest import (
    Condition,
    ConditionStatus,
    DeploymentPhase,
    DeploymentStatus,
    DEPLOYMENT_FINALIZER,
    GitOpsDeployment,
    ManifestObject,
    NamedResource,
)


def test_parse_deployment(deployment_doc: dict[str, Any]) -> None:
    """Test parsing a GitOpsDeployment record."""
    deployment = GitOpsDeployment.parse_doc(deployment_doc)
    assert deployment.name == "demo"
    assert deployment.namespace == "default"
    assert deployment.spec.branch == "main"
    assert deployment.spec.path == "manifests"
    assert deployment.spec.interval == "1m"
    assert deployment.status == DeploymentStatus()
    assert deployment.resource_id == NamedResource("GitOpsDeployment", "default", "demo")
    assert deployment.phase == DeploymentPhase.ACTIVE


def test_parse_deployment_status(deployment_doc: dict[str, Any]) -> None:
    """Test parsing the status written by a previous cycle."""
    deployment_doc["status"] = {
        "synced": True,
        "lastSyncTime": "2024-05-01T10:00:00Z",
        "conditions": [
            {
                "type": "Ready",
                "status": "True",
                "reason": "Reconciled",
                "message": "Successfully applied manifests",
                "lastTransitionTime": "2024-05-01T10:00:00Z",
            }
        ],
    }
    deployment = GitOpsDeployment.parse_doc(deployment_doc)
    when = datetime.datetime(2024, 5, 1, 10, 0, 0, tzinfo=datetime.timezone.utc)
    assert deployment.status.synced
    assert deployment.status.last_sync_time == when
    condition = deployment.status.get_condition("Ready")
    assert condition is not None
    assert condition.status == ConditionStatus.TRUE
    assert condition.reason == "Reconciled"
    assert condition.last_transition_time == when
    assert deployment.status.get_condition("Stalled") is None


def test_status_to_dict() -> None:
    """Test serializing a status uses the wire field names."""
    when = datetime.datetime(2024, 5, 1, 10, 0, 0, tzinfo=datetime.timezone.utc)
    status = DeploymentStatus(
        synced=False,
        conditions=[
            Condition(
                type="Ready",
                status=ConditionStatus.FALSE,
                reason="CloneFailed",
                message="boom",
                last_transition_time=when,
            )
        ],
    )
    assert status.to_dict() == {
        "synced": False,
        "conditions": [
            {
                "type": "Ready",
                "status": "False",
                "reason": "CloneFailed",
                "message": "boom",
                "lastTransitionTime": "2024-05-01T10:00:00Z",
            }
        ],
    }


@pytest.mark.parametrize(
    ("key", "value", "match"),
    [
        ("kind", "ConfigMap", "Invalid GitOpsDeployment kind"),
        ("metadata", {}, "missing metadata"),
        ("metadata", {"namespace": "default"}, "missing metadata.name"),
        ("spec", None, "missing spec"),
        ("spec", {"repoURL": "https://example.com/repo.git"}, "Invalid GitOpsDeployment demo"),
    ],
)
def test_parse_invalid_deployment(
    deployment_doc: dict[str, Any], key: str, value: Any, match: str
) -> None:
    """Test parsing malformed GitOpsDeployment records."""
    deployment_doc[key] = value
    with pytest.raises(InputException, match=match):
        GitOpsDeployment.parse_doc(deployment_doc)


def test_deployment_phase(deployment_doc: dict[str, Any]) -> None:
    """Test the lifecycle phase derived from the record metadata."""
    deployment_doc["metadata"]["deletionTimestamp"] = "2024-05-01T10:00:00Z"
    deployment = GitOpsDeployment.parse_doc(deployment_doc)
    assert deployment.phase == DeploymentPhase.GONE

    deployment_doc["metadata"]["finalizers"] = [DEPLOYMENT_FINALIZER]
    deployment = GitOpsDeployment.parse_doc(deployment_doc)
    assert deployment.phase == DeploymentPhase.TERMINATING


def test_manifest_object() -> None:
    """Test parsing a generic object and rendering it for a write."""
    doc = {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": "app-config", "namespace": "other", "labels": {"a": "b"}},
        "data": {"key": "value"},
    }
    obj = ManifestObject.parse_doc(doc)
    assert obj.resource_id == NamedResource("ConfigMap", "other", "app-config")
    assert obj.resource_version is None
    assert str(obj) == "ConfigMap/other/app-config"

    moved = obj.with_namespace("default").with_resource_version("7")
    assert moved.to_doc() == {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": "app-config",
            "namespace": "default",
            "labels": {"a": "b"},
            "resourceVersion": "7",
        },
        "data": {"key": "value"},
    }
    # The original document is left untouched
    assert doc["metadata"]["namespace"] == "other"
    assert "resourceVersion" not in doc["metadata"]

    cleared = moved.with_resource_version(None)
    assert "resourceVersion" not in cleared.to_doc()["metadata"]


@pytest.mark.parametrize(
    ("doc", "match"),
    [
        (["a", "list"], "not a mapping"),
        ({"apiVersion": "v1", "metadata": {"name": "x"}}, "missing kind"),
        ({"kind": "ConfigMap", "metadata": {"name": "x"}}, "missing apiVersion"),
        ({"kind": "ConfigMap", "apiVersion": "v1"}, "missing metadata"),
        ({"kind": "ConfigMap", "apiVersion": "v1", "metadata": {"a": "b"}}, "missing metadata.name"),
    ],
)
def test_parse_invalid_object(doc: Any, match: str) -> None:
    """Test parsing documents that are not kubernetes objects."""
    with pytest.raises(InputException, match=match):
        ManifestObject.parse_doc(doc)


def test_named_resource() -> None:
    """Test the string form of resource identifiers."""
    assert str(NamedResource("ConfigMap", "ns", "name")) == "ConfigMap/ns/name"
    assert NamedResource("Namespace", None, "ns").namespaced_name == "ns"
