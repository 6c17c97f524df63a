"""Work queue that hands out deployment keys to reconcile workers.

The queue guarantees that a key is never held by more than one worker at a
time. Adding a key that is already waiting is a no-op; adding a key that is
being processed marks it dirty and it is queued again once the worker calls
`done`. Keys may also be added after a delay (the interval timer) or after a
per-key exponential backoff (failed cycles).
"""

import asyncio
from collections import deque
import datetime
import logging
from typing import Generic, Hashable, TypeVar

_LOGGER = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)


class QueueShutDown(Exception):
    """Raised by `get` once the queue has been shut down."""


class WorkQueue(Generic[K]):
    """A coalescing, single-flight work queue with delayed and rate limited adds."""

    def __init__(
        self,
        base_delay: datetime.timedelta = datetime.timedelta(milliseconds=5),
        max_delay: datetime.timedelta = datetime.timedelta(seconds=1000),
    ) -> None:
        """Initialize the WorkQueue.

        Args:
            base_delay: Delay before the first retry of a failed key.
            max_delay: Upper bound for the exponential retry delay.
        """
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._queue: deque[K] = deque()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._timers: dict[K, asyncio.TimerHandle] = {}
        self._ready = asyncio.Event()
        self._shutting_down = False

    def __len__(self) -> int:
        """Return the number of keys waiting to be handed out."""
        return len(self._queue)

    def add(self, key: K) -> None:
        """Queue the key unless it is already waiting."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key in self._processing:
            _LOGGER.debug("Key %s is in flight, deferring", key)
            return
        self._queue.append(key)
        self._ready.set()

    async def get(self) -> K:
        """Wait for the next key and mark it as being processed.

        Raises:
            QueueShutDown: If the queue was shut down.
        """
        while not self._queue:
            if self._shutting_down:
                raise QueueShutDown()
            self._ready.clear()
            await self._ready.wait()
        key = self._queue.popleft()
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: K) -> None:
        """Mark the key as no longer processed, re-queueing it if it was added since."""
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.append(key)
            self._ready.set()

    def add_after(self, key: K, delay: datetime.timedelta) -> None:
        """Queue the key once the delay has passed.

        Only the earliest pending delayed add of a key is kept.
        """
        if self._shutting_down:
            return
        seconds = delay.total_seconds()
        if seconds <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + seconds
        if (timer := self._timers.get(key)) is not None:
            if timer.when() <= when:
                return
            timer.cancel()
        _LOGGER.debug("Scheduling %s in %s", key, delay)
        self._timers[key] = loop.call_at(when, self._fire_timer, key)

    def _fire_timer(self, key: K) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: K) -> None:
        """Queue the key after an exponential backoff based on its failure count."""
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._base_delay * (2 ** min(failures, 30)), self._max_delay)
        _LOGGER.debug("Retrying %s in %s (attempt %d)", key, delay, failures + 1)
        self.add_after(key, delay)

    def forget(self, key: K) -> None:
        """Reset the failure count of the key."""
        self._failures.pop(key, None)

    def num_requeues(self, key: K) -> int:
        """Return the number of rate limited adds since the key was last forgotten."""
        return self._failures.get(key, 0)

    def shut_down(self) -> None:
        """Stop handing out keys and drop any pending delayed adds."""
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._ready.set()
