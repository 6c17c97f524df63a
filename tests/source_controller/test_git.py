"""Tests for local git mirrors."""

from collections.abc import Callable
from pathlib import Path

import git
import pytest

from gitops_deploy.config import SourceConfig
from gitops_deploy.exceptions import SyncError
from gitops_deploy.source_controller import SourceSynchronizer, manifests_path


@pytest.fixture(name="synchronizer")
def synchronizer_fixture(mirror_root: Path) -> SourceSynchronizer:
    return SourceSynchronizer(SourceConfig(mirror_root=mirror_root))


async def test_clone_then_pull(
    synchronizer: SourceSynchronizer,
    git_repo_dir: Path,
    mirror_root: Path,
    commit: Callable[[str, str], None],
) -> None:
    """Test the first sync clones and later syncs pull new commits."""
    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    assert path == mirror_root / "demo"
    assert (path / "manifests" / "a.yaml").exists()
    assert git.Repo(path).active_branch.name == "main"

    commit("manifests/b.yaml", "kind: ConfigMap\n")
    assert not (path / "manifests" / "b.yaml").exists()

    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    assert (path / "manifests" / "b.yaml").exists()


async def test_existing_mirror_is_not_cloned(
    synchronizer: SourceSynchronizer, git_repo_dir: Path
) -> None:
    """Test an existing mirror is reused rather than cloned again."""
    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    marker = path / "untracked.txt"
    marker.write_text("left behind")

    await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    assert marker.exists()


async def test_pull_up_to_date(
    synchronizer: SourceSynchronizer, git_repo_dir: Path
) -> None:
    """Test pulling with nothing new is not an error."""
    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    head = git.Repo(path).head.commit.hexsha
    await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    assert git.Repo(path).head.commit.hexsha == head


async def test_clone_failure(
    synchronizer: SourceSynchronizer, tmp_dir: Path, mirror_root: Path
) -> None:
    """Test cloning a repository that does not exist."""
    with pytest.raises(SyncError, match="Failed to sync"):
        await synchronizer.ensure_latest(str(tmp_dir / "missing"), "main", "demo")
    assert not (mirror_root / "demo").exists()


async def test_clone_missing_branch(
    synchronizer: SourceSynchronizer, git_repo_dir: Path
) -> None:
    """Test cloning a branch that does not exist."""
    with pytest.raises(SyncError):
        await synchronizer.ensure_latest(str(git_repo_dir), "no-such-branch", "demo")


async def test_partial_mirror(
    synchronizer: SourceSynchronizer, git_repo_dir: Path, mirror_root: Path
) -> None:
    """Test a leftover directory that is not a repository fails every sync."""
    (mirror_root / "demo").mkdir(parents=True)
    with pytest.raises(SyncError):
        await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")

    await synchronizer.delete_mirror("demo")
    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    assert (path / "manifests" / "a.yaml").exists()


async def test_verify_branch(git_repo_dir: Path, mirror_root: Path) -> None:
    """Test the checked out branch is verified on pull when enabled."""
    repo = git.Repo(git_repo_dir)
    repo.git.branch("release")

    await SourceSynchronizer(SourceConfig(mirror_root=mirror_root)).ensure_latest(
        str(git_repo_dir), "main", "demo"
    )

    # The branch is not checked again by default
    await SourceSynchronizer(SourceConfig(mirror_root=mirror_root)).ensure_latest(
        str(git_repo_dir), "release", "demo"
    )

    synchronizer = SourceSynchronizer(
        SourceConfig(mirror_root=mirror_root, verify_branch=True)
    )
    with pytest.raises(SyncError, match="expected release"):
        await synchronizer.ensure_latest(str(git_repo_dir), "release", "demo")
    await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")


async def test_delete_mirror(
    synchronizer: SourceSynchronizer, git_repo_dir: Path
) -> None:
    """Test removing a mirror, including one that is already gone."""
    path = await synchronizer.ensure_latest(str(git_repo_dir), "main", "demo")
    await synchronizer.delete_mirror("demo")
    assert not path.exists()
    await synchronizer.delete_mirror("demo")


def test_manifests_path() -> None:
    """Test resolving the manifests directory within a mirror."""
    assert manifests_path(Path("/mirrors/demo"), "deploy/prod") == Path(
        "/mirrors/demo/deploy/prod"
    )
    assert manifests_path(Path("/mirrors/demo"), "/deploy") == Path("/mirrors/demo/deploy")
    assert manifests_path(Path("/mirrors/demo"), "") == Path("/mirrors/demo")
