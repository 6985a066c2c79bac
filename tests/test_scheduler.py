"""Tests for the background sweep scheduler."""

import asyncio
from datetime import datetime, timedelta

import pytest

from mnemo.core.scheduler import ScheduledTask, Scheduler, TaskPriority


@pytest.fixture
def scheduler():
    return Scheduler(tick=0.01)


def test_schedule_task(scheduler):
    """Test task scheduling."""
    scheduler.schedule_task(
        task_id="sweep",
        name="Expiry sweep",
        callback=lambda: None,
        interval=timedelta(hours=1),
    )

    tasks = scheduler.list_tasks()
    assert [t.id for t in tasks] == ["sweep"]
    assert tasks[0].interval == timedelta(hours=1)


def test_cancel_task(scheduler):
    scheduler.schedule_task(task_id="sweep", name="Sweep", callback=lambda: None)
    assert scheduler.cancel_task("sweep")
    assert not scheduler.cancel_task("sweep")
    assert scheduler.list_tasks() == []


def test_task_priority():
    """Test task priority ordering."""
    tasks = [
        ScheduledTask(id="low", name="Low", callback=lambda: None, priority=TaskPriority.LOW),
        ScheduledTask(id="high", name="High", callback=lambda: None, priority=TaskPriority.HIGH),
    ]
    sorted_tasks = sorted(tasks, key=lambda t: t.priority.value, reverse=True)
    assert sorted_tasks[0].id == "high"


@pytest.mark.asyncio
async def test_run_pending_runs_due_tasks_by_priority(scheduler):
    order = []

    async def consolidate():
        order.append("consolidate")

    scheduler.schedule_task("low", "Low", consolidate, interval=timedelta(hours=1), priority=TaskPriority.LOW)
    scheduler.schedule_task("high", "High", lambda: order.append("expiry"), priority=TaskPriority.HIGH)
    scheduler.schedule_task("later", "Later", lambda: order.append("later"), delay=timedelta(hours=1))

    assert await scheduler.run_pending() == 2
    assert order == ["expiry", "consolidate"]

    # One-shot tasks are dropped, interval tasks rescheduled
    ids = {t.id for t in scheduler.list_tasks()}
    assert ids == {"low", "later"}
    low = next(t for t in scheduler.list_tasks() if t.id == "low")
    assert low.next_run > datetime.now() + timedelta(minutes=59)


@pytest.mark.asyncio
async def test_failing_task_does_not_stop_others(scheduler):
    ran = []

    def broken():
        raise RuntimeError("boom")

    scheduler.schedule_task("broken", "Broken", broken, priority=TaskPriority.HIGH)
    scheduler.schedule_task("ok", "Ok", lambda: ran.append(True))

    assert await scheduler.run_pending() == 2
    assert ran == [True]


@pytest.mark.asyncio
async def test_start_stop():
    """Loop runs tasks and stop cancels it."""
    scheduler = Scheduler(tick=0.01)
    ran = asyncio.Event()
    scheduler.schedule_task("tick", "Tick", ran.set, interval=timedelta(hours=1))

    await scheduler.start()
    assert scheduler.running
    await asyncio.wait_for(ran.wait(), timeout=1.0)
    await scheduler.stop()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_stop_cancels_running_sweep():
    scheduler = Scheduler(tick=0.01)
    started = asyncio.Event()

    async def slow_sweep():
        started.set()
        await asyncio.sleep(60)

    scheduler.schedule_task("slow", "Slow", slow_sweep, interval=timedelta(hours=1))
    await scheduler.start()
    await asyncio.wait_for(started.wait(), timeout=1.0)

    await asyncio.wait_for(scheduler.stop(), timeout=1.0)
    assert not scheduler.running


@pytest.mark.asyncio
async def test_run_now_records_result(scheduler):
    async def sweep():
        return 3

    scheduler.schedule_task("expiry", "Expiry", sweep, interval=timedelta(hours=1), delay=timedelta(hours=1))

    assert await scheduler.run_now("expiry") == 3
    task = scheduler.get_task("expiry")
    assert task.run_count == 1
    assert task.last_error is None
    assert task.to_dict()["interval_seconds"] == 3600

    with pytest.raises(KeyError):
        await scheduler.run_now("missing")


@pytest.mark.asyncio
async def test_failure_is_recorded(scheduler):
    def broken():
        raise RuntimeError("disk full")

    scheduler.schedule_task("decay", "Decay", broken, interval=timedelta(hours=1))
    await scheduler.run_pending()

    task = scheduler.get_task("decay")
    assert task.failure_count == 1
    assert task.last_error == "disk full"
    assert task.next_run > datetime.now()
