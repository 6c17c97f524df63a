"""Local git mirrors of deployment sources."""

import asyncio
import logging
from pathlib import Path
import shutil

import git

from gitops_deploy.config import SourceConfig
from gitops_deploy.exceptions import SyncError

_LOGGER = logging.getLogger(__name__)


def manifests_path(local_path: Path, sub_path: str) -> Path:
    """Return the manifests directory within a local mirror."""
    return local_path / sub_path.lstrip("/")


class SourceSynchronizer:
    """Keeps one local working copy per deployment in sync with its remote.

    The mirror for a deployment lives at `mirror_root / identity`. When that
    path does not exist the repository is cloned at the requested branch,
    otherwise the existing working copy is pulled. Git runs in a worker thread.
    """

    def __init__(self, config: SourceConfig) -> None:
        """Initialize the SourceSynchronizer."""
        self._config = config

    def mirror_path(self, identity: str) -> Path:
        """Return the local mirror path for a deployment identity."""
        return self._config.mirror_root / identity

    async def ensure_latest(self, repo_url: str, branch: str, identity: str) -> Path:
        """Clone or pull the mirror for the identity and return its path.

        Raises:
            SyncError: If the clone or pull failed.
        """
        path = self.mirror_path(identity)
        try:
            await asyncio.to_thread(self._clone_or_pull, repo_url, branch, path)
        except (git.exc.GitError, OSError, ValueError) as err:
            raise SyncError(f"Failed to sync {repo_url} ({branch}): {err}") from err
        return path

    def _clone_or_pull(self, repo_url: str, branch: str, path: Path) -> None:
        if not path.exists():
            self._clone(repo_url, branch, path)
        else:
            self._pull(branch, path)

    def _clone(self, repo_url: str, branch: str, path: Path) -> None:
        _LOGGER.info("Cloning repository %s (branch %s) to %s", repo_url, branch, path)
        path.parent.mkdir(parents=True, exist_ok=True)
        repo = git.Repo.clone_from(repo_url, str(path), branch=branch)
        _LOGGER.debug("Cloned %s at %s", repo_url, repo.head.commit.hexsha)

    def _pull(self, branch: str, path: Path) -> None:
        _LOGGER.info("Updating existing repository at %s", path)
        repo = git.Repo(str(path))
        if self._config.verify_branch:
            try:
                current = repo.active_branch.name
            except TypeError as err:
                raise SyncError(f"Mirror {path} has a detached HEAD") from err
            if current != branch:
                raise SyncError(
                    f"Mirror {path} is on branch {current}, expected {branch}"
                )
        repo.remote(self._config.remote_name).pull(ff_only=True)
        _LOGGER.debug("Pulled %s to %s", path, repo.head.commit.hexsha)

    async def delete_mirror(self, identity: str) -> None:
        """Remove the local mirror for the identity, if present.

        Raises:
            SyncError: If the directory could not be removed.
        """
        path = self.mirror_path(identity)
        if not path.exists():
            _LOGGER.debug("Mirror %s already removed", path)
            return
        _LOGGER.info("Removing mirror %s", path)
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except FileNotFoundError:
            pass
        except OSError as err:
            raise SyncError(f"Failed to remove mirror {path}: {err}") from err
