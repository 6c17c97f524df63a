"""The apply controller module.

This module applies the manifests in a local mirror to the store, and deletes
them again when a deployment is finalized.
"""

from .applier import ManifestApplier, find_manifests

__all__ = [
    "ManifestApplier",
    "find_manifests",
]
