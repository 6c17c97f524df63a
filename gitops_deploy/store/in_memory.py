"""Module for in memory object store."""

import copy
import itertools
import logging
from typing import Any

from gitops_deploy.exceptions import ConflictError, ObjectNotFoundError, StoreException
from gitops_deploy.manifest import ManifestObject, NamedResource, format_time, now

from .store import Store, StoreEvent


_LOGGER = logging.getLogger(__name__)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Behaves like the api server for the parts the engine relies on: every write
    assigns a new, strictly increasing resource version, stale updates are
    rejected, and deleting an object that still carries finalizers only marks
    it with a deletion timestamp. The object goes away once an update leaves it
    with no finalizers.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        super().__init__()
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _get_doc(self, resource_id: NamedResource) -> dict[str, Any]:
        if (doc := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"Object {resource_id} not found")
        return doc

    def _snapshot(self, resource_id: NamedResource) -> ManifestObject:
        return ManifestObject.parse_doc(copy.deepcopy(self._objects[resource_id]))

    async def get_object(self, resource_id: NamedResource) -> ManifestObject | None:
        """Retrieve an object by resource identity, or None if it does not exist."""
        if resource_id not in self._objects:
            return None
        return self._snapshot(resource_id)

    async def create_object(self, obj: ManifestObject) -> ManifestObject:
        """Create a new object, returning it with its assigned resource version."""
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise StoreException(f"Object {resource_id} already exists")
        doc = obj.with_resource_version(self._next_version()).to_doc()
        doc["metadata"].pop("deletionTimestamp", None)
        _LOGGER.debug("Creating object %s in store", resource_id)
        self._objects[resource_id] = doc
        created = self._snapshot(resource_id)
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, created)
        return created

    async def update_object(self, obj: ManifestObject) -> ManifestObject:
        """Replace an existing object, rejecting stale resource versions."""
        resource_id = obj.resource_id
        existing = self._get_doc(resource_id)
        current_version = existing["metadata"].get("resourceVersion")
        if obj.resource_version != current_version:
            raise ConflictError(str(resource_id), obj.resource_version, current_version)

        doc = obj.with_resource_version(self._next_version()).to_doc()
        # Status and deletion state are owned by the store, not the writer
        doc.pop("status", None)
        if "status" in existing:
            doc["status"] = copy.deepcopy(existing["status"])
        doc["metadata"].pop("deletionTimestamp", None)
        if deletion_timestamp := existing["metadata"].get("deletionTimestamp"):
            doc["metadata"]["deletionTimestamp"] = deletion_timestamp
            if not doc["metadata"].get("finalizers"):
                _LOGGER.debug("Last finalizer removed, deleting %s", resource_id)
                del self._objects[resource_id]
                self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, None)
                return ManifestObject.parse_doc(doc)

        _LOGGER.debug("Updating object %s in store", resource_id)
        self._objects[resource_id] = doc
        updated = self._snapshot(resource_id)
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, updated)
        return updated

    async def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object, or mark it for deletion if it has finalizers."""
        doc = self._get_doc(resource_id)
        metadata = doc["metadata"]
        if metadata.get("finalizers"):
            if metadata.get("deletionTimestamp"):
                return
            _LOGGER.debug("Marking %s for deletion", resource_id)
            metadata["deletionTimestamp"] = format_time(now())
            metadata["resourceVersion"] = self._next_version()
            self._fire_event(
                StoreEvent.OBJECT_UPDATED, resource_id, self._snapshot(resource_id)
            )
            return
        _LOGGER.debug("Deleting object %s from store", resource_id)
        del self._objects[resource_id]
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, None)

    async def update_status(
        self, resource_id: NamedResource, status: dict[str, Any]
    ) -> None:
        """Replace the status of an object."""
        doc = self._get_doc(resource_id)
        _LOGGER.debug("Updating status for %s", resource_id)
        doc["status"] = copy.deepcopy(status)
        doc["metadata"]["resourceVersion"] = self._next_version()
        self._fire_event(
            StoreEvent.STATUS_UPDATED, resource_id, self._snapshot(resource_id)
        )

    async def list_objects(self, kind: str) -> list[ManifestObject]:
        """List all objects of the specified kind."""
        return [
            self._snapshot(resource_id)
            for resource_id in sorted(self._objects, key=str)
            if resource_id.kind == kind
        ]
