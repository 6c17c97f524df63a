"""
gitops-deploy keeps a cluster in sync with manifests stored in git.

Each GitOpsDeployment record names a repository, a branch, a path within the
repository and a reconcile interval. The engine keeps a local mirror of the
repository per deployment, applies every manifest below the path and records
the outcome in the record's status.

.. include:: ../README.md
"""

__all__ = [
    "manifest",
    "store",
    "source_controller",
    "apply_controller",
    "deployment_controller",
    "manager",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
