"""Store implementation backed by a live cluster through `kubectl`.

Every operation is a single kubectl invocation against the current context
(or the one passed in). Objects are exchanged as JSON documents. Errors
reported by the api server are mapped onto the store exceptions by matching
the reason in kubectl's error output.
"""

import json
import logging
from pathlib import Path
from typing import Any

from gitops_deploy.command import Command, run
from gitops_deploy.exceptions import (
    ConflictError,
    KubectlException,
    ObjectNotFoundError,
    StoreException,
)
from gitops_deploy.manifest import ManifestObject, NamedResource

from .store import Store, StoreEvent

_LOGGER = logging.getLogger(__name__)

KUBECTL_BIN = "kubectl"

_NOT_FOUND = "(NotFound)"
_CONFLICT = "(Conflict)"


def _is_not_found(err: KubectlException) -> bool:
    return _NOT_FOUND in str(err)


def _is_conflict(err: KubectlException) -> bool:
    return _CONFLICT in str(err) or "the object has been modified" in str(err)


class KubectlStore(Store):
    """Store that reads and writes objects in a live cluster."""

    def __init__(self, context: str | None = None, kubeconfig: Path | None = None) -> None:
        """Initialize the KubectlStore.

        Args:
            context: The kubeconfig context to use, defaults to the current one.
            kubeconfig: Path to a kubeconfig file, defaults to kubectl's lookup.
        """
        super().__init__()
        self._context = context
        self._kubeconfig = kubeconfig

    def _command(self, *args: str) -> Command:
        cmd = [KUBECTL_BIN]
        if self._kubeconfig:
            cmd.extend(["--kubeconfig", str(self._kubeconfig)])
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        return Command(cmd, exc=KubectlException)

    @staticmethod
    def _target(resource_id: NamedResource) -> list[str]:
        args = [resource_id.kind, resource_id.name]
        if resource_id.namespace:
            args.extend(["--namespace", resource_id.namespace])
        return args

    @staticmethod
    def _parse(out: str) -> ManifestObject:
        try:
            return ManifestObject.parse_doc(json.loads(out))
        except json.JSONDecodeError as err:
            raise StoreException(f"Unable to parse kubectl output: {err}") from err

    async def get_object(self, resource_id: NamedResource) -> ManifestObject | None:
        """Retrieve an object by resource identity, or None if it does not exist."""
        try:
            out = await run(
                self._command("get", *self._target(resource_id), "--output", "json")
            )
        except KubectlException as err:
            if _is_not_found(err):
                return None
            raise StoreException(f"Failed to get {resource_id}: {err}") from err
        return self._parse(out)

    async def create_object(self, obj: ManifestObject) -> ManifestObject:
        """Create a new object, returning it with its assigned resource version."""
        try:
            out = await run(
                self._command("create", "--filename", "-", "--output", "json"),
                stdin=json.dumps(obj.to_doc()).encode(),
            )
        except KubectlException as err:
            raise StoreException(f"Failed to create {obj}: {err}") from err
        created = self._parse(out)
        self._fire_event(StoreEvent.OBJECT_ADDED, obj.resource_id, created)
        return created

    async def update_object(self, obj: ManifestObject) -> ManifestObject:
        """Replace an existing object, rejecting stale resource versions."""
        try:
            out = await run(
                self._command("replace", "--filename", "-", "--output", "json"),
                stdin=json.dumps(obj.to_doc()).encode(),
            )
        except KubectlException as err:
            if _is_not_found(err):
                raise ObjectNotFoundError(f"Object {obj} not found") from err
            if _is_conflict(err):
                raise ConflictError(str(obj), obj.resource_version, None) from err
            raise StoreException(f"Failed to update {obj}: {err}") from err
        updated = self._parse(out)
        self._fire_event(StoreEvent.OBJECT_UPDATED, obj.resource_id, updated)
        return updated

    async def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object."""
        try:
            await run(
                self._command("delete", *self._target(resource_id), "--wait=false")
            )
        except KubectlException as err:
            if _is_not_found(err):
                raise ObjectNotFoundError(f"Object {resource_id} not found") from err
            raise StoreException(f"Failed to delete {resource_id}: {err}") from err
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, None)

    async def update_status(
        self, resource_id: NamedResource, status: dict[str, Any]
    ) -> None:
        """Replace the status of an object through the status subresource.

        A merge patch replaces lists wholesale, so the conditions written here
        replace any conditions already on the object.
        """
        patch = json.dumps({"status": status})
        try:
            await run(
                self._command(
                    "patch",
                    *self._target(resource_id),
                    "--subresource=status",
                    "--type=merge",
                    "--patch",
                    patch,
                )
            )
        except KubectlException as err:
            if _is_not_found(err):
                raise ObjectNotFoundError(f"Object {resource_id} not found") from err
            raise StoreException(
                f"Failed to update status of {resource_id}: {err}"
            ) from err
        self._fire_event(StoreEvent.STATUS_UPDATED, resource_id, None)

    async def list_objects(self, kind: str) -> list[ManifestObject]:
        """List all objects of the specified kind across namespaces."""
        try:
            out = await run(
                self._command("get", kind, "--all-namespaces", "--output", "json")
            )
        except KubectlException as err:
            raise StoreException(f"Failed to list {kind}: {err}") from err
        try:
            items = json.loads(out).get("items", [])
        except json.JSONDecodeError as err:
            raise StoreException(f"Unable to parse kubectl output: {err}") from err
        _LOGGER.debug("Listed %d objects of kind %s", len(items), kind)
        return [ManifestObject.parse_doc(item) for item in items]
