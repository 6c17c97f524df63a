"""Shared fixtures for gitops-deploy tests."""

from collections.abc import Callable, Generator
from pathlib import Path
import tempfile

import git
import pytest

from gitops_deploy.manifest import DEPLOYMENT_API_VERSION, DEPLOYMENT_KIND

BRANCH = "main"

CONFIG_MAP = """\
apiVersion: v1
kind: ConfigMap
metadata:
  name: app-config
  namespace: somewhere-else
data:
  greeting: hello
"""


@pytest.fixture(name="tmp_dir")
def tmp_dir_fixture() -> Generator[Path, None, None]:
    """Create a temporary directory for test resources."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture(name="mirror_root")
def mirror_root_fixture(tmp_dir: Path) -> Path:
    """Directory holding local mirrors, created lazily by the synchronizer."""
    return tmp_dir / "mirrors"


@pytest.fixture(name="git_repo_dir")
def git_repo_dir_fixture(tmp_dir: Path) -> Path:
    """Create a local git repository with a single manifest on the main branch."""
    repo_path = tmp_dir / "git-repo"
    repo_path.mkdir()

    repo = git.Repo.init(repo_path)
    repo.config_writer().set_value("user", "name", "myusername").release()
    repo.config_writer().set_value("user", "email", "myemail").release()

    manifests = repo_path / "manifests"
    manifests.mkdir()
    (manifests / "a.yaml").write_text(CONFIG_MAP)

    repo.git.add(".")
    repo.git.commit(m="Initial commit")
    repo.git.branch("-M", BRANCH)
    return repo_path


@pytest.fixture(name="commit")
def commit_fixture(git_repo_dir: Path) -> Callable[[str, str], None]:
    """Return a function that writes a file to the repository and commits it."""
    repo = git.Repo(git_repo_dir)

    def _commit(rel_path: str, content: str) -> None:
        path = git_repo_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        repo.git.add(".")
        repo.git.commit(m=f"Update {rel_path}")

    return _commit


@pytest.fixture(name="deployment_doc")
def deployment_doc_fixture(git_repo_dir: Path) -> dict:
    """A GitOpsDeployment record pointing at the local repository."""
    return {
        "apiVersion": DEPLOYMENT_API_VERSION,
        "kind": DEPLOYMENT_KIND,
        "metadata": {
            "name": "demo",
            "namespace": "default",
        },
        "spec": {
            "repoURL": str(git_repo_dir),
            "branch": BRANCH,
            "path": "manifests",
            "interval": "1m",
        },
    }
