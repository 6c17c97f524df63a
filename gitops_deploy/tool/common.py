"""Flags and helpers shared by the gitops-deploy actions."""

from argparse import ArgumentParser, BooleanOptionalAction
import pathlib
from typing import Any

from gitops_deploy.config import (
    DEFAULT_MIRROR_ROOT,
    DEFAULT_TARGET_NAMESPACE,
    ApplierConfig,
    ControllerConfig,
    SourceConfig,
)
from gitops_deploy.store import KubectlStore


def add_store_flags(args: ArgumentParser) -> None:
    """Add flags selecting the cluster to talk to."""
    args.add_argument(
        "--kubeconfig",
        help="Path to the kubeconfig file, defaults to kubectl's lookup",
        type=pathlib.Path,
        default=None,
    )
    args.add_argument(
        "--context",
        help="The kubeconfig context to use, defaults to the current context",
        default=None,
    )


def add_controller_flags(args: ArgumentParser) -> None:
    """Add flags configuring reconcile cycles."""
    args.add_argument(
        "--mirror-root",
        help="Directory holding the local git mirrors",
        type=pathlib.Path,
        default=DEFAULT_MIRROR_ROOT,
    )
    args.add_argument(
        "--target-namespace",
        help="Namespace all manifests are applied to",
        default=DEFAULT_TARGET_NAMESPACE,
    )
    args.add_argument(
        "--enable-finalizers",
        action=BooleanOptionalAction,
        default=False,
        help="Delete applied manifests and mirrors when a deployment is deleted",
    )


def build_store(kubeconfig: pathlib.Path | None, context: str | None, **kwargs: Any) -> KubectlStore:
    """Create the kubectl backed store from flags."""
    return KubectlStore(context=context, kubeconfig=kubeconfig)


def build_controller_config(
    mirror_root: pathlib.Path,
    target_namespace: str,
    enable_finalizers: bool,
    **kwargs: Any,
) -> ControllerConfig:
    """Create the controller configuration from flags."""
    return ControllerConfig(
        source=SourceConfig(mirror_root=mirror_root),
        applier=ApplierConfig(target_namespace=target_namespace),
        enable_finalizers=enable_finalizers,
    )
