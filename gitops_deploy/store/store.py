"""Store module for reading and writing cluster resources."""

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
from enum import Enum
import logging
from typing import Any, DefaultDict

from gitops_deploy.manifest import ManifestObject, NamedResource

_LOGGER = logging.getLogger(__name__)

Listener = Callable[[NamedResource, ManifestObject | None], None]


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"
    STATUS_UPDATED = "status_updated"


class Store(ABC):
    """Abstract base class for a declarative resource store with listener support.

    Objects are keyed by `NamedResource` (kind, namespace, name). Updates use
    optimistic concurrency: the `resource_version` carried by the object must
    match the stored one or the write is rejected with a `ConflictError`.
    """

    def __init__(self) -> None:
        """Initialize the listener registry."""
        self._listeners: DefaultDict[StoreEvent, list[Listener]] = defaultdict(list)

    @abstractmethod
    async def get_object(self, resource_id: NamedResource) -> ManifestObject | None:
        """Retrieve an object by resource identity, or None if it does not exist."""

    @abstractmethod
    async def create_object(self, obj: ManifestObject) -> ManifestObject:
        """Create a new object, returning it with its assigned resource version."""

    @abstractmethod
    async def update_object(self, obj: ManifestObject) -> ManifestObject:
        """Replace an existing object.

        Raises:
            ConflictError: If the object's resource version is stale.
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def delete_object(self, resource_id: NamedResource) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    async def update_status(
        self, resource_id: NamedResource, status: dict[str, Any]
    ) -> None:
        """Replace the status of an object, leaving the rest of it untouched."""

    @abstractmethod
    async def list_objects(self, kind: str) -> list[ManifestObject]:
        """List all objects of the specified kind."""

    def add_listener(self, event: StoreEvent, callback: Listener) -> Callable[[], None]:
        """Register a callback for a specific event.

        Returns a callable that can be called to remove the listener.
        """

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)
        return remove

    def _fire_event(
        self, event: StoreEvent, resource_id: NamedResource, obj: ManifestObject | None
    ) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(resource_id, obj)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
