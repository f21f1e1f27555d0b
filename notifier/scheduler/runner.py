"""Polling job runner.

The runner owns the execution side of the scheduler:
- poll the job store for due records on a fixed interval
- take a per-key execution lock (in-process set + store lease)
- dispatch the registered handler under a global concurrency ceiling
- record the outcome and compute the next due time

Handlers return an explicit ``HandlerResult``. Exceptions and timeouts are
contained here and recorded as failures; they never stop the poll loop.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import socket
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from notifier.core.errors import LockContention
from notifier.core.logging import job_context
from notifier.scheduler.models import HandlerResult, JobRecord, utcnow
from notifier.scheduler.store import AbstractJobStore

logger = logging.getLogger(__name__)


JobHandler = Callable[[JobRecord], Awaitable[HandlerResult]]
FailureObserver = Callable[[JobRecord, int], None]


class RunnerState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"


@dataclass
class PollSummary:
    due: int = 0
    dispatched: int = 0
    skipped: int = 0


def _default_owner_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def next_run_after(record: JobRecord, now: datetime) -> datetime:
    """Advance ``record.next_run_at`` by whole intervals.

    The cadence is anchored on the originally scheduled time, never on the
    completion time. If the process was down for several intervals, the
    missed slots collapse into the run that just happened and the next due
    time is the first slot after ``now``.
    """
    interval = record.interval
    next_run = record.next_run_at + interval
    if next_run <= now:
        missed = (now - record.next_run_at) // interval
        next_run = record.next_run_at + interval * (missed + 1)
    return next_run


class JobRunner:
    """Asyncio poll loop executing due jobs from an ``AbstractJobStore``."""

    def __init__(
        self,
        store: AbstractJobStore,
        *,
        poll_interval_seconds: float = 10.0,
        max_concurrency: int = 20,
        handler_timeout_seconds: float = 30.0,
        lock_lease_seconds: float = 300.0,
        batch_size: int = 500,
        clock: Callable[[], datetime] = utcnow,
        on_failure: Optional[FailureObserver] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")

        self._store = store
        self._poll_interval = poll_interval_seconds
        self._max_concurrency = max_concurrency
        self._handler_timeout = handler_timeout_seconds
        self._lock_lease = timedelta(seconds=lock_lease_seconds)
        self._batch_size = batch_size
        self._clock = clock
        self._on_failure = on_failure
        self.owner_id = owner_id or _default_owner_id()

        self._handlers: dict[str, JobHandler] = {}
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._in_flight: set[str] = set()
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._state = RunnerState.IDLE

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def register(self, name: str, handler: JobHandler) -> None:
        self._handlers[name] = handler

    def has_handler(self, name: str) -> bool:
        return name in self._handlers

    async def start(self) -> None:
        """Start polling; the first poll runs immediately (catch-up after downtime)."""
        if self.running:
            return
        self._state = RunnerState.IDLE
        self._loop_task = asyncio.create_task(self._run_forever(), name="job-runner")
        logger.info(
            "runner.started",
            extra={
                "owner": self.owner_id,
                "poll_interval_s": self._poll_interval,
                "max_concurrency": self._max_concurrency,
            },
        )

    async def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait (bounded) for in-flight handlers to settle."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        pending = list(self._tasks)
        if pending:
            _, still_running = await asyncio.wait(
                pending, timeout=timeout if timeout is not None else self._handler_timeout
            )
            for task in still_running:
                task.cancel()

        self._state = RunnerState.STOPPED
        logger.info("runner.stopped", extra={"owner": self.owner_id, "pending": len(pending)})

    async def drain(self) -> None:
        """Wait until every dispatched handler has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                # Storage hiccups must not kill the loop; next poll retries.
                logger.exception("runner.poll_failed")
                self._state = RunnerState.IDLE
            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> PollSummary:
        """Fetch due jobs and dispatch every one whose lock can be taken."""
        summary = PollSummary()
        self._state = RunnerState.POLLING
        now = self._clock()

        due = await asyncio.to_thread(
            lambda: list(self._store.find_due(now, limit=self._batch_size))
        )
        summary.due = len(due)

        self._state = RunnerState.DISPATCHING
        for record in due:
            if await self._try_lock(record, now):
                self._dispatch(record)
                summary.dispatched += 1
            else:
                summary.skipped += 1

        self._state = RunnerState.IDLE
        if summary.due:
            logger.debug(
                "runner.poll",
                extra={
                    "due": summary.due,
                    "dispatched": summary.dispatched,
                    "skipped": summary.skipped,
                    "in_flight": self.in_flight,
                },
            )
        return summary

    async def _try_lock(self, record: JobRecord, now: datetime) -> bool:
        if record.key in self._in_flight:
            return False
        self._in_flight.add(record.key)
        try:
            acquired = await asyncio.to_thread(
                self._store.acquire_lock,
                record.key,
                self.owner_id,
                lease_until=now + self._lock_lease,
                now=now,
            )
        except LockContention as exc:
            logger.debug(
                "runner.lock_contention",
                extra={"job_key": record.key, "holder": (exc.details or {}).get("owner")},
            )
            acquired = False
        except Exception:
            # Treated as contention so the key is not stranded in-flight.
            logger.exception("runner.lock_failed", extra={"job_key": record.key})
            acquired = False
        if not acquired:
            self._in_flight.discard(record.key)
        return acquired

    def _dispatch(self, record: JobRecord) -> None:
        task = asyncio.create_task(self._execute(record), name=f"job:{record.key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _execute(self, record: JobRecord) -> None:
        try:
            result = await self.invoke(record)
            await self._settle(record, result)
        except Exception:
            logger.exception("runner.settle_failed", extra={"job_key": record.key})
        finally:
            self._in_flight.discard(record.key)
            try:
                await asyncio.to_thread(self._store.release_lock, record.key, self.owner_id)
            except Exception:
                # The lease expires on its own.
                logger.exception("runner.unlock_failed", extra={"job_key": record.key})

    async def invoke(self, record: JobRecord) -> HandlerResult:
        """Run the record's handler under the concurrency ceiling and timeout.

        Never raises for handler problems: a missing handler, an exception or
        a timeout all yield ``HandlerResult.FAILED``.
        """
        handler = self._handlers.get(record.handler_name)
        if handler is None:
            logger.error(
                "runner.unknown_handler",
                extra={"job_key": record.key, "handler_name": record.handler_name},
            )
            return HandlerResult.FAILED

        async with self._semaphore:
            with job_context(record.key):
                try:
                    result = await asyncio.wait_for(handler(record), timeout=self._handler_timeout)
                except asyncio.TimeoutError:
                    logger.warning(
                        "runner.handler_timeout",
                        extra={"timeout_s": self._handler_timeout},
                    )
                    return HandlerResult.FAILED
                except Exception as exc:
                    logger.warning(
                        "runner.handler_error",
                        extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                    )
                    return HandlerResult.FAILED
        try:
            return HandlerResult(result)
        except ValueError:
            logger.error(
                "runner.invalid_handler_result",
                extra={"job_key": record.key, "result": repr(result)},
            )
            return HandlerResult.FAILED

    async def _settle(self, record: JobRecord, result: HandlerResult) -> None:
        now = self._clock()

        if result is HandlerResult.SUBSCRIBER_GONE:
            removed = await asyncio.to_thread(self._store.cancel, record.key, job_id=record.id)
            logger.info("runner.job_cancelled", extra={"job_key": record.key, "removed": removed})
            return

        success = result is HandlerResult.DELIVERED
        next_run_at = next_run_after(record, now)
        updated = await asyncio.to_thread(
            self._store.mark_run,
            record.key,
            success,
            next_run_at,
            job_id=record.id,
            now=now,
        )
        if updated is None:
            # Cancelled or rescheduled while running; leave the new state alone.
            logger.info("runner.job_replaced", extra={"job_key": record.key})
            return

        if success:
            logger.info(
                "runner.job_succeeded",
                extra={"job_key": record.key, "next_run_at": next_run_at.isoformat()},
            )
            return

        logger.warning(
            "runner.job_failed",
            extra={
                "job_key": record.key,
                "fail_count": updated.fail_count,
                "next_run_at": next_run_at.isoformat(),
            },
        )
        if self._on_failure is not None:
            try:
                self._on_failure(updated, updated.fail_count)
            except Exception:
                logger.exception("runner.failure_observer_error", extra={"job_key": record.key})
