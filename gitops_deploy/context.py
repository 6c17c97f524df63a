"""Tracing of reconcile cycles.

A cycle runs inside `cycle_context`, which records the deployment it is
for. Each step of the cycle runs inside `trace_context` and logs its
duration labeled with that deployment, so interleaved cycles of different
deployments can be told apart in the debug log.
"""

import contextvars
from contextlib import contextmanager
import logging
from time import perf_counter
from typing import Generator

from .manifest import NamedResource

_LOGGER = logging.getLogger(__name__)

__all__ = ["cycle_context", "trace_context", "current_cycle"]


_cycle: contextvars.ContextVar[NamedResource | None] = contextvars.ContextVar(
    "cycle", default=None
)


def current_cycle() -> NamedResource | None:
    """Return the deployment whose cycle is running in this context."""
    return _cycle.get()


@contextmanager
def cycle_context(resource_id: NamedResource) -> Generator[None, None, None]:
    """Mark the enclosed code as one reconcile cycle of the deployment."""
    token = _cycle.set(resource_id)
    t1 = perf_counter()
    _LOGGER.debug("[%s] Cycle started", resource_id)
    try:
        yield
    finally:
        _LOGGER.debug("[%s] Cycle ended (%0.2fs)", resource_id, perf_counter() - t1)
        _cycle.reset(token)


@contextmanager
def trace_context(step: str) -> Generator[None, None, None]:
    """Log the duration of a step of the current cycle."""
    resource_id = _cycle.get()
    t1 = perf_counter()
    try:
        yield
    finally:
        _LOGGER.debug("[%s] %s (%0.2fs)", resource_id, step, perf_counter() - t1)
