"""Apply or delete the manifests found in a directory tree.

Every regular file with a manifest suffix below the root directory is read as
a stream of YAML (or JSON) documents. Each document is applied to the store in
file-then-document order, with files visited in lexical order. The first error
aborts the whole walk: there is no partial success accounting.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
import logging
import os
from pathlib import Path

import aiofiles
import yaml

from gitops_deploy.config import ApplierConfig
from gitops_deploy.context import current_cycle
from gitops_deploy.exceptions import (
    ApplyError,
    GitOpsException,
    InputException,
    ObjectNotFoundError,
)
from gitops_deploy.manifest import ManifestObject
from gitops_deploy.store import Store

_LOGGER = logging.getLogger(__name__)


def _extension(name: str) -> str:
    """Return the suffix from the last dot, so `.yaml` is its own extension."""
    if (index := name.rfind(".")) < 0:
        return ""
    return name[index:]


def find_manifests(root_dir: Path, extensions: tuple[str, ...]) -> list[Path]:
    """Return manifest files below the root directory in lexical walk order.

    Directories are descended into where they sort among their siblings.
    Symlinked directories are not followed.
    """
    results: list[Path] = []
    with os.scandir(root_dir) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            results.extend(find_manifests(Path(entry.path), extensions))
        elif _extension(entry.name) in extensions:
            results.append(Path(entry.path))
    return results


class ManifestApplier:
    """Applies manifest files to a store as generic objects."""

    def __init__(self, store: Store, config: ApplierConfig) -> None:
        """Initialize the ManifestApplier."""
        self._store = store
        self._config = config

    async def apply_all(self, root_dir: Path) -> None:
        """Create or update every object found below the root directory.

        Raises:
            ApplyError: On the first document that fails to decode or write.
        """
        await self._visit(root_dir, "Applying", self.apply_object)

    async def delete_all(self, root_dir: Path) -> None:
        """Delete every object found below the root directory.

        Raises:
            ApplyError: On the first document that fails to decode or delete.
        """
        await self._visit(root_dir, "Deleting", self.delete_object)

    async def apply_object(self, obj: ManifestObject) -> ManifestObject:
        """Create the object, or replace it if it already exists.

        The object is placed in the target namespace. An existing object's
        resource version is carried over so the replace is rejected if another
        writer got there first. Fields removed from the manifest are not pruned.
        """
        obj = obj.with_namespace(self._config.target_namespace)
        try:
            existing = await self._store.get_object(obj.resource_id)
            if existing is None:
                _LOGGER.debug("Creating %s", obj)
                return await self._store.create_object(obj.with_resource_version(None))
            _LOGGER.debug("Updating %s at version %s", obj, existing.resource_version)
            return await self._store.update_object(
                obj.with_resource_version(existing.resource_version)
            )
        except GitOpsException as err:
            raise ApplyError(f"Failed to apply {obj}: {err}") from err

    async def delete_object(self, obj: ManifestObject) -> None:
        """Delete the object from the target namespace."""
        obj = obj.with_namespace(self._config.target_namespace)
        _LOGGER.debug("Deleting %s", obj)
        try:
            await self._store.delete_object(obj.resource_id)
        except ObjectNotFoundError as err:
            if not self._config.tolerate_missing:
                raise ApplyError(f"Failed to delete {obj}: {err}") from err
            _LOGGER.debug("Object %s already deleted", obj)
        except GitOpsException as err:
            raise ApplyError(f"Failed to delete {obj}: {err}") from err

    async def _visit(
        self,
        root_dir: Path,
        verb: str,
        action: Callable[[ManifestObject], Awaitable[object]],
    ) -> None:
        try:
            paths = await asyncio.to_thread(
                find_manifests, root_dir, self._config.extensions
            )
        except OSError as err:
            raise ApplyError(f"Unable to read manifests in {root_dir}: {err}") from err
        for path in paths:
            _LOGGER.info("[%s] %s manifest %s", current_cycle(), verb, path)
            async for obj in self._decode(path):
                await action(obj)

    async def _decode(self, path: Path) -> AsyncGenerator[ManifestObject, None]:
        """Yield the objects in a manifest file.

        Decoding stops at the first document that is not valid YAML, is not a
        mapping or has no kind. That is an error only in strict mode, otherwise
        the rest of the file is ignored. A document that decodes but lacks
        other identity fields cannot be written and always fails the walk.
        """
        try:
            async with aiofiles.open(path) as manifest_file:
                content = await manifest_file.read()
        except OSError as err:
            raise ApplyError(f"Unable to read manifest {path}: {err}") from err

        docs = yaml.safe_load_all(content)
        while True:
            try:
                doc = next(docs)
            except StopIteration:
                return
            except yaml.YAMLError as err:
                self._stop_decoding(path, err)
                return
            if doc is None:
                continue
            if not isinstance(doc, dict) or not doc.get("kind"):
                self._stop_decoding(path, f"document is not an object: {doc}")
                return
            try:
                obj = ManifestObject.parse_doc(doc)
            except InputException as err:
                raise ApplyError(f"Unable to apply manifest {path}: {err}") from err
            yield obj

    def _stop_decoding(self, path: Path, err: Exception | str) -> None:
        if self._config.strict_decode:
            raise ApplyError(f"Unable to decode manifest {path}: {err}")
        _LOGGER.debug("Stopped decoding %s: %s", path, err)
