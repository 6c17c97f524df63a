"""Supervision of the long running tasks that drive reconcile cycles.

Worker and resync tasks run until they are cancelled. A task that ends with
an error means its owner lost a worker, which is logged.
"""

import asyncio
from functools import partial
import logging
from typing import Any, Coroutine, Set
from abc import ABC, abstractmethod

_LOGGER = logging.getLogger(__name__)

__all__: list[str] = []


class TaskService(ABC):
    """Service for starting and stopping background tasks."""

    @abstractmethod
    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str
    ) -> asyncio.Task[Any]:
        """Start and track a new long running background task."""

    @abstractmethod
    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for them to finish."""


class TaskServiceImpl(TaskService):
    """Tracks the background tasks of a single owner."""

    def __init__(self) -> None:
        """Initialize the task service."""
        self._background_tasks: Set[asyncio.Task[Any]] = set()

    def create_background_task(
        self, coro: Coroutine[None, None, Any], name: str
    ) -> asyncio.Task[Any]:
        """Start and track a new background task."""
        task = asyncio.create_task(coro, name=name)
        self._background_tasks.add(task)
        task.add_done_callback(partial(self._task_done, self._background_tasks))
        return task

    def _task_done(
        self, task_set: Set[asyncio.Task[Any]], task: asyncio.Task[Any]
    ) -> None:
        task_set.discard(task)
        if task.cancelled():
            _LOGGER.debug("Task %s cancelled", task.get_name())
        elif (err := task.exception()) is not None:
            _LOGGER.error("Task %s failed: %s", task.get_name(), err)
        else:
            _LOGGER.debug("Task %s finished", task.get_name())

    async def cancel_all(self) -> None:
        """Cancel every tracked task and wait for them to finish."""
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            _LOGGER.debug("Cancelling %d tasks", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
