"""
The store module provides access to the declarative resource store the engine
reads deployment records from and applies manifests to.

- Uses NamedResource (kind, namespace, name) as the key for all objects.
- Objects are schema-less ManifestObject values.
- Updates use optimistic concurrency on the resource version.

The abstract interface allows for an in-memory implementation used in tests
and a kubectl backed implementation used against a live cluster.
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore
from .kubectl import KubectlStore

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
    "KubectlStore",
]
