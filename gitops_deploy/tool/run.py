"""Gitops-deploy run action."""

import asyncio
import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from typing import cast, Any

from gitops_deploy.config import ManagerConfig
from gitops_deploy.deployment_controller import ReconciliationController
from gitops_deploy.duration import parse_duration
from gitops_deploy.manager import Manager

from . import common


_LOGGER = logging.getLogger(__name__)

DEFAULT_RESYNC_PERIOD = "30s"


class RunAction:
    """Continuously reconcile every GitOpsDeployment in the cluster."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "run",
                help="Run the reconcile loop until interrupted",
                description="Watch GitOpsDeployments in the cluster and keep them in sync with their git repositories.",
            ),
        )
        args.add_argument(
            "--workers",
            type=int,
            default=ManagerConfig.workers,
            help="Number of deployments reconciled concurrently",
        )
        args.add_argument(
            "--resync-period",
            default=DEFAULT_RESYNC_PERIOD,
            help="How often to list deployments in the cluster, e.g. 30s",
        )
        common.add_store_flags(args)
        common.add_controller_flags(args)
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        workers: int,
        resync_period: str,
        **kwargs: Any,
    ) -> None:
        """Async Action implementation."""
        store = common.build_store(**kwargs)
        controller = ReconciliationController(
            store, common.build_controller_config(**kwargs)
        )
        manager = Manager(
            store,
            controller,
            ManagerConfig(workers=workers, resync_period=parse_duration(resync_period)),
        )
        await manager.start()
        try:
            await asyncio.Event().wait()
        finally:
            await manager.close()
