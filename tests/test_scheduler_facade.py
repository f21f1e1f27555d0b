"""Tests for SchedulerFacade: schedule, cancel, run_now and restore."""

import asyncio
from dataclasses import dataclass
from datetime import timedelta

import pytest

from notifier.core.errors import InvalidIntervalError, NotFoundError
from notifier.scheduler.facade import SchedulerFacade, validate_interval
from notifier.scheduler.models import HandlerResult, JobRecord
from notifier.scheduler.runner import JobRunner
from notifier.scheduler.store import InMemoryJobStore


@dataclass
class _Sub:
    key: str
    interval_minutes: int


class _Directory:
    def __init__(self, *subscribers: _Sub) -> None:
        self.subscribers = list(subscribers)

    def list_enabled(self):
        return list(self.subscribers)


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def runner(store, clock) -> JobRunner:
    runner = JobRunner(store, clock=clock, handler_timeout_seconds=1.0, owner_id="facade-test")
    runner.results = []

    async def handler(record: JobRecord) -> HandlerResult:
        runner.results.append(record.key)
        return getattr(runner, "next_result", HandlerResult.DELIVERED)

    runner.register("deliver-notification", handler)
    return runner


@pytest.fixture
def facade(store, runner, clock) -> SchedulerFacade:
    return SchedulerFacade(store, runner, clock=clock)


@pytest.mark.asyncio
async def test_schedule_sets_first_run_one_interval_from_now(facade, clock) -> None:
    record = await facade.schedule("42", 5)

    assert record.key == "42"
    assert record.interval_minutes == 5
    assert record.next_run_at == clock.now + timedelta(minutes=5)
    assert record.handler_name == "deliver-notification"
    assert await facade.active_count() == 1


@pytest.mark.asyncio
async def test_schedule_replaces_existing_job(facade, store) -> None:
    first = await facade.schedule("42", 5)
    second = await facade.schedule("42", 10)

    assert second.id != first.id
    assert store.get("42").interval_minutes == 10
    assert await facade.active_count() == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [0, 1441, -1, True, 5.5, "5", None])
async def test_schedule_rejects_invalid_intervals(facade, value) -> None:
    with pytest.raises(InvalidIntervalError) as exc_info:
        await facade.schedule("42", value)

    assert exc_info.value.code == "invalid_interval"
    assert exc_info.value.details["min_value"] == 1
    assert exc_info.value.details["max_value"] == 1440
    assert await facade.active_count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("value", [0, 1441, -1, True, 5.5, "5", None])
async def test_invalid_interval_leaves_existing_job_untouched(facade, store, value) -> None:
    existing = await facade.schedule("42", 5)

    with pytest.raises(InvalidIntervalError):
        await facade.schedule("42", value)

    current = store.get("42")
    assert current.id == existing.id
    assert current.interval_minutes == 5
    assert current.next_run_at == existing.next_run_at
    assert await facade.active_count() == 1


@pytest.mark.parametrize("value", [1, 1440])
def test_validate_interval_accepts_bounds(value: int) -> None:
    assert validate_interval(value) == value


@pytest.mark.asyncio
async def test_cancel_is_idempotent(facade) -> None:
    await facade.schedule("42", 5)

    assert await facade.cancel("42") is True
    assert await facade.cancel("42") is False
    assert await facade.find("42") is None


@pytest.mark.asyncio
async def test_concurrent_mutations_apply_in_call_order(facade, store) -> None:
    await asyncio.gather(
        facade.schedule("42", 5),
        facade.cancel("42"),
        facade.schedule("42", 15),
    )

    assert store.get("42").interval_minutes == 15


@pytest.mark.asyncio
async def test_get_missing_raises_not_found(facade) -> None:
    with pytest.raises(NotFoundError) as exc_info:
        await facade.get("nobody")

    assert exc_info.value.code == "job_not_found"
    assert exc_info.value.details == {"resource": "job", "key": "nobody"}


@pytest.mark.asyncio
async def test_run_now_leaves_next_run_untouched(facade, runner, store) -> None:
    scheduled = await facade.schedule("42", 30)

    result = await facade.run_now("42")

    assert result is HandlerResult.DELIVERED
    assert runner.results == ["42"]
    assert store.get("42").next_run_at == scheduled.next_run_at
    assert store.get("42").last_run_at is None


@pytest.mark.asyncio
async def test_run_now_without_job_does_not_persist(facade, runner, store) -> None:
    result = await facade.run_now("99")

    assert result is HandlerResult.DELIVERED
    assert runner.results == ["99"]
    assert store.get("99") is None


@pytest.mark.asyncio
async def test_run_now_cancels_job_when_subscriber_is_gone(facade, runner, store) -> None:
    await facade.schedule("42", 5)
    runner.next_result = HandlerResult.SUBSCRIBER_GONE

    result = await facade.run_now("42")

    assert result is HandlerResult.SUBSCRIBER_GONE
    assert store.get("42") is None


@pytest.mark.asyncio
async def test_run_now_without_registered_handler_raises(store, clock) -> None:
    bare_runner = JobRunner(store, clock=clock, owner_id="bare")
    facade = SchedulerFacade(store, bare_runner, clock=clock)

    with pytest.raises(NotFoundError) as exc_info:
        await facade.run_now("42")

    assert exc_info.value.code == "handler_not_registered"


@pytest.mark.asyncio
async def test_restore_creates_only_missing_jobs(facade, store, clock) -> None:
    existing = await facade.schedule("1", 5)
    clock.advance(minutes=3)
    directory = _Directory(_Sub("1", 5), _Sub("2", 10), _Sub("3", 0))

    created = await facade.restore(directory)

    assert created == 1
    assert store.get("1").next_run_at == existing.next_run_at
    assert store.get("2").next_run_at == clock.now + timedelta(minutes=10)
    assert store.get("3") is None
