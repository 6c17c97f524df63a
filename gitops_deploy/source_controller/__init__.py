"""The source controller module.

This module keeps the local mirror of each deployment's git repository up to
date and resolves the manifests directory within it.
"""

from .git import SourceSynchronizer, manifests_path

__all__ = [
    "SourceSynchronizer",
    "manifests_path",
]
