"""Tests for the polling job runner."""

import asyncio
from datetime import timedelta

import pytest

from notifier.scheduler.models import HandlerResult, JobRecord
from notifier.scheduler.runner import JobRunner, RunnerState, next_run_after
from notifier.scheduler.store import InMemoryJobStore

HANDLER = "deliver-notification"


def _runner(store, clock, **kwargs) -> JobRunner:
    kwargs.setdefault("poll_interval_seconds", 10.0)
    kwargs.setdefault("handler_timeout_seconds", 1.0)
    return JobRunner(store, clock=clock, owner_id="test-runner", **kwargs)


def _schedule(store, clock, key: str, minutes: int = 5) -> JobRecord:
    return store.upsert(JobRecord.new(key, minutes, now=clock(), handler_name=HANDLER))


def test_next_run_after_keeps_fixed_cadence(clock) -> None:
    record = JobRecord.new("u1", 5, now=clock.now)
    due = record.next_run_at

    # Handler finished 40 seconds late: cadence stays anchored on the due time.
    assert next_run_after(record, due + timedelta(seconds=40)) == due + timedelta(minutes=5)


def test_next_run_after_collapses_missed_slots(clock) -> None:
    record = JobRecord.new("u1", 5, now=clock.now)
    due = record.next_run_at

    # Down for 23 minutes: 4 slots missed, next one is the first after now.
    assert next_run_after(record, due + timedelta(minutes=23)) == due + timedelta(minutes=25)
    # Exactly on a slot boundary: that slot counts as past.
    assert next_run_after(record, due + timedelta(minutes=10)) == due + timedelta(minutes=15)


@pytest.mark.asyncio
async def test_three_failures_keep_job_active_and_others_running(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    seen: list[str] = []

    async def handler(record: JobRecord) -> HandlerResult:
        seen.append(record.key)
        return HandlerResult.FAILED if record.key == "bad" else HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    bad = _schedule(store, clock, "bad", 5)
    _schedule(store, clock, "good", 5)
    original_due = bad.next_run_at

    for _ in range(3):
        clock.advance(minutes=5)
        await runner.poll_once()
        await runner.drain()

    failed = store.get("bad")
    assert failed.fail_count == 3
    assert failed.active is True
    assert failed.next_run_at == original_due + timedelta(minutes=15)

    good = store.get("good")
    assert good.fail_count == 0
    assert good.last_run_at == clock.now
    assert seen.count("good") == 3


@pytest.mark.asyncio
async def test_success_after_failures_resets_fail_count(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    results = iter([HandlerResult.FAILED, HandlerResult.DELIVERED])

    async def handler(record: JobRecord) -> HandlerResult:
        return next(results)

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 1)

    clock.advance(minutes=1)
    await runner.poll_once()
    await runner.drain()
    assert store.get("u1").fail_count == 1

    clock.advance(minutes=1)
    await runner.poll_once()
    await runner.drain()
    record = store.get("u1")
    assert record.fail_count == 0
    assert record.last_run_at == clock.now


@pytest.mark.asyncio
async def test_subscriber_gone_removes_job(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)

    async def handler(record: JobRecord) -> HandlerResult:
        return HandlerResult.SUBSCRIBER_GONE

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)

    clock.advance(minutes=5)
    await runner.poll_once()
    await runner.drain()

    assert store.get("u1") is None
    assert list(store.find_due(clock.now + timedelta(days=1))) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("behaviour", ["raise", "timeout", "garbage"])
async def test_handler_problems_are_recorded_as_failures(clock, behaviour: str) -> None:
    store = InMemoryJobStore()
    failures: list[tuple[str, int]] = []
    runner = _runner(
        store,
        clock,
        handler_timeout_seconds=0.05,
        on_failure=lambda record, count: failures.append((record.key, count)),
    )

    async def handler(record: JobRecord):
        if behaviour == "raise":
            raise RuntimeError("boom")
        if behaviour == "timeout":
            await asyncio.sleep(5)
        return "not-a-result"

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)

    clock.advance(minutes=5)
    summary = await runner.poll_once()
    await runner.drain()

    assert summary.dispatched == 1
    assert store.get("u1").fail_count == 1
    assert failures == [("u1", 1)]


@pytest.mark.asyncio
async def test_unknown_handler_counts_as_failure(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    store.upsert(JobRecord.new("u1", 5, now=clock.now, handler_name="no-such-handler"))

    clock.advance(minutes=5)
    await runner.poll_once()
    await runner.drain()

    assert store.get("u1").fail_count == 1


@pytest.mark.asyncio
async def test_lock_held_elsewhere_skips_job(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    calls: list[str] = []

    async def handler(record: JobRecord) -> HandlerResult:
        calls.append(record.key)
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "locked", 5)
    _schedule(store, clock, "free", 5)
    clock.advance(minutes=5)
    store.acquire_lock("locked", "other-process", lease_until=clock.now + timedelta(minutes=5), now=clock.now)

    summary = await runner.poll_once()
    await runner.drain()

    assert summary.due == 2
    assert summary.dispatched == 1
    assert summary.skipped == 1
    assert calls == ["free"]
    assert store.get("locked").fail_count == 0


class _FailingLockOnceStore(InMemoryJobStore):
    def __init__(self, failing_key: str) -> None:
        super().__init__()
        self._failing_key = failing_key

    def acquire_lock(self, key, owner, *, lease_until, now):
        if key == self._failing_key:
            self._failing_key = None
            raise RuntimeError("database is locked")
        return super().acquire_lock(key, owner, lease_until=lease_until, now=now)


@pytest.mark.asyncio
async def test_lock_error_skips_job_once_and_keeps_dispatching(clock) -> None:
    store = _FailingLockOnceStore("flaky")
    runner = _runner(store, clock)
    seen: list[str] = []

    async def handler(record: JobRecord) -> HandlerResult:
        seen.append(record.key)
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "flaky", 5)
    _schedule(store, clock, "steady", 5)
    clock.advance(minutes=5)

    summary = await runner.poll_once()
    await runner.drain()

    assert summary.due == 2
    assert summary.dispatched == 1
    assert summary.skipped == 1
    assert seen == ["steady"]
    assert runner.in_flight == 0

    # Still due: the failed lock attempt did not touch the record.
    second = await runner.poll_once()
    await runner.drain()

    assert second.dispatched == 1
    assert seen == ["steady", "flaky"]
    assert store.get("flaky").last_run_at == clock.now
    assert store.get("flaky").fail_count == 0


@pytest.mark.asyncio
async def test_job_still_running_is_not_dispatched_twice(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    release = asyncio.Event()
    calls = 0

    async def handler(record: JobRecord) -> HandlerResult:
        nonlocal calls
        calls += 1
        await release.wait()
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)
    clock.advance(minutes=5)

    first = await runner.poll_once()
    second = await runner.poll_once()
    assert first.dispatched == 1
    assert second.skipped == 1
    assert runner.in_flight == 1

    release.set()
    await runner.drain()

    assert calls == 1
    assert runner.in_flight == 0
    assert store.get("u1").locked_by is None


@pytest.mark.asyncio
async def test_concurrency_ceiling_is_respected(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock, max_concurrency=2)
    running = 0
    peak = 0

    async def handler(record: JobRecord) -> HandlerResult:
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.01)
        running -= 1
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    for i in range(6):
        _schedule(store, clock, f"u{i}", 5)
    clock.advance(minutes=5)

    summary = await runner.poll_once()
    await runner.drain()

    assert summary.dispatched == 6
    assert peak == 2
    assert all(store.get(f"u{i}").last_run_at == clock.now for i in range(6))


@pytest.mark.asyncio
async def test_cancel_during_run_is_not_undone(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(record: JobRecord) -> HandlerResult:
        started.set()
        await release.wait()
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)
    clock.advance(minutes=5)

    await runner.poll_once()
    await started.wait()
    store.cancel("u1")
    release.set()
    await runner.drain()

    assert store.get("u1") is None


@pytest.mark.asyncio
async def test_reschedule_during_run_keeps_new_record(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock)
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(record: JobRecord) -> HandlerResult:
        started.set()
        await release.wait()
        return HandlerResult.FAILED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)
    clock.advance(minutes=5)

    await runner.poll_once()
    await started.wait()
    replacement = _schedule(store, clock, "u1", 30)
    release.set()
    await runner.drain()

    current = store.get("u1")
    assert current.id == replacement.id
    assert current.fail_count == 0
    assert current.next_run_at == replacement.next_run_at


@pytest.mark.asyncio
async def test_start_polls_immediately_and_stop_settles(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock, poll_interval_seconds=60.0)
    delivered = asyncio.Event()

    async def handler(record: JobRecord) -> HandlerResult:
        delivered.set()
        return HandlerResult.DELIVERED

    runner.register(HANDLER, handler)
    _schedule(store, clock, "u1", 5)
    clock.advance(minutes=10)

    await runner.start()
    assert runner.running is True
    await asyncio.wait_for(delivered.wait(), timeout=1.0)
    await runner.stop(timeout=1.0)

    assert runner.running is False
    assert runner.state is RunnerState.STOPPED
    assert store.get("u1").last_run_at == clock.now


@pytest.mark.asyncio
async def test_poll_loop_survives_store_errors(clock) -> None:
    store = InMemoryJobStore()
    runner = _runner(store, clock, poll_interval_seconds=0.01)
    calls = 0
    original = store.find_due

    def flaky_find_due(now, *, limit=None):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("database is locked")
        return original(now, limit=limit)

    store.find_due = flaky_find_due

    await runner.start()
    for _ in range(100):
        if calls >= 2:
            break
        await asyncio.sleep(0.01)
    await runner.stop(timeout=1.0)

    assert calls >= 2
