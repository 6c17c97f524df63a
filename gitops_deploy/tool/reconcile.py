"""Gitops-deploy reconcile action."""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast, Any

from gitops_deploy.deployment_controller import ReconciliationController
from gitops_deploy.manifest import DEPLOYMENT_KIND, NamedResource

from . import common


_LOGGER = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "default"


class ReconcileAction:
    """Run a single reconcile cycle for one deployment."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Reconcile one GitOpsDeployment once",
                description="Sync and apply a single GitOpsDeployment, then print when it should run again.",
            ),
        )
        args.add_argument(
            "--name", required=True, help="Name of the GitOpsDeployment"
        )
        args.add_argument(
            "--namespace",
            "-n",
            default=DEFAULT_NAMESPACE,
            help="Namespace of the GitOpsDeployment",
        )
        common.add_store_flags(args)
        common.add_controller_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        name: str,
        namespace: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        store = common.build_store(**kwargs)
        controller = ReconciliationController(
            store, common.build_controller_config(**kwargs)
        )
        resource_id = NamedResource(DEPLOYMENT_KIND, namespace, name)
        result = await controller.reconcile(resource_id)
        if result.requeue_after is None:
            print(f"{resource_id}: reconciled, no further sync scheduled")
        else:
            print(f"{resource_id}: reconciled, next sync in {result.requeue_after}")
