"""
GitOpsDeployment Controller implementation.

This controller runs one reconcile cycle for a single GitOpsDeployment. A
cycle has no persisted intermediate state and always walks the same steps:

    Fetch -> Sync -> Apply -> Report -> Scheduled | Failed

- Fetch: load the deployment record. A missing record ends the cycle quietly.
- Sync: clone or pull the deployment's local mirror.
- Apply: apply every manifest under the configured path.
- Report: write the Ready condition and sync time to the record's status.

The result tells the caller when to run the next cycle. Failures are recorded
as a Ready=False condition and raised; the caller applies its own backoff.

When finalizers are enabled the record goes through an additional terminal
phase: a deleted record that still carries the finalizer has its manifests
deleted and its mirror removed before the finalizer is released.
"""

import dataclasses
import datetime
import logging
from dataclasses import dataclass

from gitops_deploy.apply_controller import ManifestApplier
from gitops_deploy.config import ControllerConfig
from gitops_deploy.context import cycle_context, trace_context
from gitops_deploy.duration import parse_duration
from gitops_deploy.exceptions import (
    ApplyError,
    ConfigError,
    GitOpsException,
    PersistError,
    SyncError,
)
from gitops_deploy.manifest import (
    ConditionStatus,
    DeploymentPhase,
    DeploymentStatus,
    DEPLOYMENT_FINALIZER,
    GitOpsDeployment,
    ManifestObject,
    NamedResource,
    now,
)
from gitops_deploy.source_controller import SourceSynchronizer, manifests_path
from gitops_deploy.store import Store

from .status import (
    MESSAGE_RECONCILED,
    REASON_APPLY_FAILED,
    REASON_CLONE_FAILED,
    REASON_RECONCILED,
    update_status,
)

_LOGGER = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Scheduling decision at the end of a successful cycle."""

    requeue_after: datetime.timedelta | None = None
    """Run the next cycle after this delay, or not at all when None."""


class ReconciliationController:
    """Controller for reconciling GitOpsDeployment resources."""

    def __init__(self, store: Store, config: ControllerConfig) -> None:
        """
        Initialize the controller with a store.

        Args:
            store: The store holding deployment records and applied manifests
            config: The configuration for the controller
        """
        self._store = store
        self._config = config
        self._source = SourceSynchronizer(config.source)
        self._applier = ManifestApplier(store, config.applier)

    async def reconcile(self, resource_id: NamedResource) -> ReconcileResult:
        """Run one reconcile cycle for the deployment.

        Raises:
            SyncError: The mirror could not be cloned or pulled.
            ApplyError: A manifest could not be decoded or written.
            PersistError: The status or finalizers could not be written.
            ConfigError: The interval is not a valid duration.
        """
        with cycle_context(resource_id):
            with trace_context("Fetch"):
                obj = await self._store.get_object(resource_id)
            if obj is None:
                _LOGGER.info("GitOpsDeployment %s not found, ignoring", resource_id)
                return ReconcileResult()
            deployment = GitOpsDeployment.parse_doc(obj.payload)

            if self._config.enable_finalizers:
                if deployment.phase != DeploymentPhase.ACTIVE:
                    return await self._finalize(obj, deployment)
                if DEPLOYMENT_FINALIZER not in deployment.finalizers:
                    await self._set_finalizers(
                        obj, deployment.finalizers + [DEPLOYMENT_FINALIZER]
                    )

            return await self._sync(deployment)

    async def _sync(self, deployment: GitOpsDeployment) -> ReconcileResult:
        spec = deployment.spec
        with trace_context("Sync"):
            try:
                local_path = await self._source.ensure_latest(
                    spec.repo_url, spec.branch, deployment.name
                )
            except SyncError as err:
                _LOGGER.error(
                    "Failed to clone or pull repository for %s: %s",
                    deployment.resource_id,
                    err,
                )
                await self._report_failure(deployment, REASON_CLONE_FAILED, err)
                raise

        with trace_context("Apply"):
            try:
                await self._applier.apply_all(manifests_path(local_path, spec.path))
            except ApplyError as err:
                _LOGGER.error(
                    "Failed to apply manifests for %s: %s", deployment.resource_id, err
                )
                await self._report_failure(deployment, REASON_APPLY_FAILED, err)
                raise

        with trace_context("Report"):
            sync_time = now()
            status = dataclasses.replace(
                deployment.status, synced=True, last_sync_time=sync_time
            )
            status = update_status(
                status,
                ConditionStatus.TRUE,
                REASON_RECONCILED,
                MESSAGE_RECONCILED,
                now=sync_time,
            )
            await self._persist_status(deployment, status)

        try:
            interval = parse_duration(spec.interval)
        except ConfigError as err:
            _LOGGER.error(
                "Invalid interval format for %s: %s", deployment.resource_id, err
            )
            raise
        _LOGGER.info(
            "Reconciled %s, next sync in %s", deployment.resource_id, interval
        )
        return ReconcileResult(requeue_after=interval)

    async def _finalize(
        self, obj: ManifestObject, deployment: GitOpsDeployment
    ) -> ReconcileResult:
        """Clean up a deleted deployment and release its finalizer."""
        if deployment.phase == DeploymentPhase.GONE:
            _LOGGER.debug("GitOpsDeployment %s is being deleted", deployment.resource_id)
            return ReconcileResult()

        with trace_context("Finalize"):
            _LOGGER.info("Finalizing GitOpsDeployment %s", deployment.resource_id)
            mirror_path = self._source.mirror_path(deployment.name)
            if mirror_path.exists():
                await self._applier.delete_all(
                    manifests_path(mirror_path, deployment.spec.path)
                )
            else:
                _LOGGER.warning(
                    "No mirror for %s, skipping manifest deletion",
                    deployment.resource_id,
                )
            await self._source.delete_mirror(deployment.name)
            await self._set_finalizers(
                obj, [f for f in deployment.finalizers if f != DEPLOYMENT_FINALIZER]
            )
        return ReconcileResult()

    async def _set_finalizers(
        self, obj: ManifestObject, finalizers: list[str]
    ) -> ManifestObject:
        doc = obj.to_doc()
        doc["metadata"]["finalizers"] = finalizers
        try:
            return await self._store.update_object(ManifestObject.parse_doc(doc))
        except GitOpsException as err:
            raise PersistError(
                f"Failed to update finalizers of {obj.resource_id}: {err}"
            ) from err

    async def _persist_status(
        self, deployment: GitOpsDeployment, status: DeploymentStatus
    ) -> None:
        try:
            await self._store.update_status(deployment.resource_id, status.to_dict())
        except GitOpsException as err:
            _LOGGER.error(
                "Failed to update status for %s: %s", deployment.resource_id, err
            )
            raise PersistError(
                f"Failed to update status of {deployment.resource_id}: {err}"
            ) from err

    async def _report_failure(
        self, deployment: GitOpsDeployment, reason: str, err: Exception
    ) -> None:
        """Record a failed cycle; the original error is raised by the caller."""
        status = update_status(
            deployment.status, ConditionStatus.FALSE, reason, str(err)
        )
        try:
            await self._persist_status(deployment, status)
        except PersistError:
            _LOGGER.warning(
                "Could not record %s condition for %s", reason, deployment.resource_id
            )
