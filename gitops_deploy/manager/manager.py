"""Manager that drives reconcile cycles for every GitOpsDeployment in a store.

Triggers (store events, periodic resyncs and the per-deployment interval
timer) all funnel into one `WorkQueue`. A fixed pool of worker tasks takes
keys off the queue and runs `ReconciliationController.reconcile`, so distinct
deployments reconcile concurrently while a single deployment never has two
cycles in flight.
"""

import asyncio
from collections.abc import Callable
import datetime
import json
import logging
from typing import Any

from gitops_deploy.config import ManagerConfig
from gitops_deploy.deployment_controller import ReconciliationController
from gitops_deploy.exceptions import ConfigError, GitOpsException
from gitops_deploy.manifest import DEPLOYMENT_KIND, ManifestObject, NamedResource
from gitops_deploy.store import Store, StoreEvent
from gitops_deploy.task import TaskService, TaskServiceImpl

from .queue import QueueShutDown, WorkQueue

_LOGGER = logging.getLogger(__name__)

TRIGGER_EVENTS = (
    StoreEvent.OBJECT_ADDED,
    StoreEvent.OBJECT_UPDATED,
    StoreEvent.OBJECT_DELETED,
)


def _fingerprint(obj: ManifestObject) -> str:
    """Summarize the parts of a record whose change starts a new cycle.

    The status is left out so a cycle's own report never triggers another.
    """
    metadata = obj.payload.get("metadata") or {}
    key: list[Any] = [metadata.get("generation"), metadata.get("deletionTimestamp")]
    if key[0] is None:
        key.append(obj.payload.get("spec"))
    return json.dumps(key, sort_keys=True, default=str)


class Manager:
    """Runs reconcile workers for the deployments in a store."""

    def __init__(
        self,
        store: Store,
        controller: ReconciliationController,
        config: ManagerConfig,
        task_service: TaskService | None = None,
    ) -> None:
        """Initialize the Manager.

        Args:
            store: The store holding GitOpsDeployment records
            controller: The controller running individual cycles
            config: The configuration for the manager
            task_service: Runs the worker and resync tasks, one per manager by default
        """
        if config.workers < 1:
            raise ConfigError(f"Invalid number of workers: {config.workers}")
        self._store = store
        self._controller = controller
        self._config = config
        self._queue: WorkQueue[NamedResource] = WorkQueue(
            base_delay=config.base_delay, max_delay=config.max_delay
        )
        self._task_service = task_service or TaskServiceImpl()
        self._remove_listeners: list[Callable[[], None]] = []
        self._observed: dict[NamedResource, str] = {}

    @property
    def queue(self) -> WorkQueue[NamedResource]:
        """The queue feeding the workers."""
        return self._queue

    async def start(self) -> None:
        """Subscribe to store events, enqueue all deployments and start workers."""
        for event in TRIGGER_EVENTS:
            self._remove_listeners.append(
                self._store.add_listener(event, self._on_event)
            )
        await self.resync()
        for i in range(self._config.workers):
            self._task_service.create_background_task(
                self._worker(), name=f"reconcile-worker-{i}"
            )
        if self._config.resync_period is not None:
            self._task_service.create_background_task(
                self._resync_loop(self._config.resync_period.total_seconds()),
                name="resync",
            )
        _LOGGER.info("Started %d reconcile workers", self._config.workers)

    async def close(self) -> None:
        """Stop the workers and release store listeners."""
        _LOGGER.info("Closing Manager, cancelling tasks")
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()
        self._queue.shut_down()
        await self._task_service.cancel_all()

    async def resync(self) -> None:
        """Enqueue deployments that are new, changed or gone since the last listing.

        Unchanged deployments are left to their interval timer.
        """
        observed: dict[NamedResource, str] = {}
        for obj in await self._store.list_objects(DEPLOYMENT_KIND):
            observed[obj.resource_id] = fingerprint = _fingerprint(obj)
            if self._observed.get(obj.resource_id) != fingerprint:
                _LOGGER.debug("Deployment %s is new or changed", obj.resource_id)
                self._queue.add(obj.resource_id)
        for resource_id in self._observed.keys() - observed.keys():
            _LOGGER.debug("Deployment %s is gone", resource_id)
            self._queue.add(resource_id)
        self._observed = observed

    def _on_event(self, resource_id: NamedResource, obj: ManifestObject | None) -> None:
        if resource_id.kind != DEPLOYMENT_KIND:
            return
        if obj is None:
            self._observed.pop(resource_id, None)
        else:
            self._observed[resource_id] = _fingerprint(obj)
        self._queue.add(resource_id)

    async def _resync_loop(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            try:
                await self.resync()
            except GitOpsException as err:
                _LOGGER.error("Failed to list deployments: %s", err)

    async def _worker(self) -> None:
        while True:
            try:
                key = await self._queue.get()
            except QueueShutDown:
                return
            try:
                await self.process(key)
            finally:
                self._queue.done(key)

    async def process(self, key: NamedResource) -> None:
        """Run one cycle for the key and schedule the next one."""
        try:
            result = await self._controller.reconcile(key)
        except ConfigError as err:
            _LOGGER.error("Not rescheduling %s: %s", key, err)
            self._queue.forget(key)
            return
        except GitOpsException as err:
            _LOGGER.error("Reconcile of %s failed: %s", key, err)
            self._queue.add_rate_limited(key)
            return
        except Exception:
            _LOGGER.exception("Unexpected error reconciling %s", key)
            self._queue.add_rate_limited(key)
            return
        self._queue.forget(key)
        if result.requeue_after is None or result.requeue_after <= datetime.timedelta():
            _LOGGER.debug("Not rescheduling %s", key)
            return
        self._queue.add_after(key, result.requeue_after)
