"""Exceptions related to gitops-deploy."""

__all__ = [
    "GitOpsException",
    "InputException",
    "CommandException",
    "KubectlException",
    "ObjectNotFoundError",
    "StoreException",
    "ConflictError",
    "SyncError",
    "ApplyError",
    "ConfigError",
    "PersistError",
]


class GitOpsException(Exception):
    """Generic base exception used for this library."""


class InputException(GitOpsException):
    """Raised when records or manifest files are not formatted as expected."""


class CommandException(GitOpsException):
    """Raised when there is a failure running a subcommand."""


class ObjectNotFoundError(GitOpsException):
    """Raised when an object is not found in the store."""


class StoreException(GitOpsException):
    """Raised when a store read or write fails for a reason other than absence."""


class ConflictError(StoreException):
    """Raised when an update carries a stale resource version."""

    def __init__(self, resource_name: str, expected: str | None, actual: str | None) -> None:
        super().__init__(
            f"Conflict updating {resource_name}: resourceVersion {expected} "
            f"does not match current {actual}"
        )
        self.resource_name = resource_name
        self.expected = expected
        self.actual = actual


class SyncError(GitOpsException):
    """Raised when the local mirror could not be cloned or pulled."""


class ApplyError(GitOpsException):
    """Raised when a manifest could not be decoded, applied or deleted."""


class ConfigError(GitOpsException):
    """Raised when a deployment or component is misconfigured (e.g. bad interval)."""


class PersistError(GitOpsException):
    """Raised when the deployment status could not be written back."""


class KubectlException(CommandException):
    """Raised when there is a failure running a kubectl command."""
