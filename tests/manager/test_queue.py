"""Tests for the reconcile work queue."""

import asyncio
import datetime

import pytest

from gitops_deploy.manager import QueueShutDown, WorkQueue


@pytest.fixture(name="queue")
def queue_fixture() -> WorkQueue[str]:
    return WorkQueue(
        base_delay=datetime.timedelta(milliseconds=10),
        max_delay=datetime.timedelta(milliseconds=40),
    )


async def test_add_coalesces(queue: WorkQueue[str]) -> None:
    """Test adding a waiting key again is a no-op."""
    queue.add("a")
    queue.add("b")
    queue.add("a")
    assert len(queue) == 2
    assert await queue.get() == "a"
    assert await queue.get() == "b"
    assert len(queue) == 0


async def test_single_flight(queue: WorkQueue[str]) -> None:
    """Test a key being processed is only handed out again after done."""
    queue.add("a")
    key = await queue.get()
    queue.add("a")
    queue.add("a")
    assert len(queue) == 0

    queue.done(key)
    assert len(queue) == 1
    assert await queue.get() == "a"
    queue.done("a")
    assert len(queue) == 0


async def test_get_waits_for_add(queue: WorkQueue[str]) -> None:
    """Test get blocks until a key is added."""
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0.01)
    assert not task.done()
    queue.add("a")
    assert await asyncio.wait_for(task, 1) == "a"


async def test_add_after(queue: WorkQueue[str]) -> None:
    """Test delayed adds, keeping only the earliest per key."""
    queue.add_after("a", datetime.timedelta(seconds=10))
    queue.add_after("a", datetime.timedelta(milliseconds=10))
    queue.add_after("a", datetime.timedelta(seconds=5))
    assert len(queue) == 0

    assert await asyncio.wait_for(queue.get(), 1) == "a"
    queue.done("a")
    await asyncio.sleep(0.05)
    assert len(queue) == 0


async def test_add_after_no_delay(queue: WorkQueue[str]) -> None:
    """Test a delayed add with no delay is immediate."""
    queue.add_after("a", datetime.timedelta())
    assert len(queue) == 1


async def test_rate_limited(queue: WorkQueue[str]) -> None:
    """Test rate limited adds back off per key until forgotten."""
    loop = asyncio.get_running_loop()
    for attempt in range(1, 4):
        start = loop.time()
        queue.add_rate_limited("a")
        assert queue.num_requeues("a") == attempt
        assert await asyncio.wait_for(queue.get(), 1) == "a"
        assert loop.time() - start >= 0.009
        queue.done("a")

    assert queue.num_requeues("b") == 0
    queue.forget("a")
    assert queue.num_requeues("a") == 0


async def test_shut_down(queue: WorkQueue[str]) -> None:
    """Test waiting workers are released on shut down."""
    task = asyncio.create_task(queue.get())
    await asyncio.sleep(0)
    queue.add_after("a", datetime.timedelta(milliseconds=10))
    queue.shut_down()
    with pytest.raises(QueueShutDown):
        await asyncio.wait_for(task, 1)

    queue.add("b")
    assert len(queue) == 0
    with pytest.raises(QueueShutDown):
        await queue.get()
