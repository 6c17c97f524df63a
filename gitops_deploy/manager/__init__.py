"""The manager module.

This module dispatches reconcile cycles to a pool of workers through a work
queue that never runs two cycles for the same deployment at once.
"""

from .manager import Manager
from .queue import WorkQueue, QueueShutDown

__all__ = [
    "Manager",
    "WorkQueue",
    "QueueShutDown",
]
