"""Scheduler facade used by bot commands and admin routes.

All mutations for one subscriber key are serialized through a keyed
``asyncio.Lock`` so that ``schedule -> cancel -> schedule`` issued back to
back land in the store in that order. Store calls are blocking and run in a
worker thread.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Protocol

from notifier.core.errors import InvalidIntervalError, NotFoundError
from notifier.scheduler.locks import KeyedLock
from notifier.scheduler.models import (
    DEFAULT_HANDLER_NAME,
    MAX_INTERVAL_MINUTES,
    MIN_INTERVAL_MINUTES,
    HandlerResult,
    JobRecord,
    utcnow,
)
from notifier.scheduler.runner import JobRunner
from notifier.scheduler.store import AbstractJobStore

logger = logging.getLogger(__name__)


class SubscriberDirectory(Protocol):
    def list_enabled(self) -> Iterable[Any]:
        ...


def validate_interval(interval_minutes: Any) -> int:
    """Return ``interval_minutes`` if it is an int in the accepted range.

    Raises:
        InvalidIntervalError: For non-integers (``bool`` included) and for
            values outside ``MIN_INTERVAL_MINUTES..MAX_INTERVAL_MINUTES``.
    """
    valid = (
        isinstance(interval_minutes, int)
        and not isinstance(interval_minutes, bool)
        and MIN_INTERVAL_MINUTES <= interval_minutes <= MAX_INTERVAL_MINUTES
    )
    if not valid:
        raise InvalidIntervalError(
            code="invalid_interval",
            message=(
                f"Interval must be a whole number of minutes between "
                f"{MIN_INTERVAL_MINUTES} and {MAX_INTERVAL_MINUTES}"
            ),
            details={
                "min_value": MIN_INTERVAL_MINUTES,
                "max_value": MAX_INTERVAL_MINUTES,
                "actual_value": interval_minutes,
                "hint": f"Use a value from {MIN_INTERVAL_MINUTES} to {MAX_INTERVAL_MINUTES} (24 hours)",
            },
        )
    return interval_minutes


class SchedulerFacade:
    """Create, replace, cancel and trigger per-subscriber recurring jobs."""

    def __init__(
        self,
        store: AbstractJobStore,
        runner: JobRunner,
        *,
        handler_name: str = DEFAULT_HANDLER_NAME,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._runner = runner
        self._handler_name = handler_name
        self._clock = clock
        self._locks = KeyedLock()

    @property
    def handler_name(self) -> str:
        return self._handler_name

    async def schedule(self, key: str, interval_minutes: int) -> JobRecord:
        """Create or replace the recurring job for ``key``.

        The first delivery is due ``interval_minutes`` after now. A replaced
        job gets a new id; the previous record is gone.
        """
        interval = validate_interval(interval_minutes)
        key = str(key)
        async with self._locks.hold(key):
            record = JobRecord.new(key, interval, now=self._clock(), handler_name=self._handler_name)
            stored = await asyncio.to_thread(self._store.upsert, record)

        logger.info(
            "scheduler.scheduled",
            extra={
                "job_key": key,
                "interval_minutes": interval,
                "next_run_at": stored.next_run_at.isoformat(),
            },
        )
        return stored

    async def cancel(self, key: str) -> bool:
        key = str(key)
        async with self._locks.hold(key):
            removed = await asyncio.to_thread(self._store.cancel, key)
        logger.info("scheduler.cancelled", extra={"job_key": key, "removed": removed})
        return removed

    async def run_now(self, key: str) -> HandlerResult:
        """Invoke the delivery handler for ``key`` right away.

        Goes through the runner's bounded and timed invocation. The stored
        ``next_run_at`` is left untouched. If the handler reports the
        subscriber gone, the job is cancelled.
        """
        key = str(key)
        record = await asyncio.to_thread(self._store.get, key)
        if record is None:
            # Nothing scheduled: build a throwaway record just to carry the key.
            record = JobRecord.new(
                key, MIN_INTERVAL_MINUTES, now=self._clock(), handler_name=self._handler_name
            )
            persisted = False
        else:
            persisted = True

        if not self._runner.has_handler(record.handler_name):
            raise NotFoundError(
                code="handler_not_registered",
                message=f"No handler registered under '{record.handler_name}'",
                details={"resource": "handler", "key": record.handler_name},
            )

        result = await self._runner.invoke(record)
        logger.info(
            "scheduler.run_now",
            extra={"job_key": key, "result": result.value, "persisted": persisted},
        )

        if result is HandlerResult.SUBSCRIBER_GONE and persisted:
            async with self._locks.hold(key):
                await asyncio.to_thread(self._store.cancel, key, job_id=record.id)
        return result

    async def active_count(self) -> int:
        return await asyncio.to_thread(self._store.count_active)

    async def get(self, key: str) -> JobRecord:
        record = await asyncio.to_thread(self._store.get, str(key))
        if record is None:
            raise NotFoundError(
                code="job_not_found",
                message=f"No schedule exists for subscriber '{key}'",
                details={"resource": "job", "key": str(key)},
            )
        return record

    async def find(self, key: str) -> Optional[JobRecord]:
        return await asyncio.to_thread(self._store.get, str(key))

    async def list_jobs(self) -> List[JobRecord]:
        return await asyncio.to_thread(self._store.list_jobs)

    async def restore(self, directory: SubscriberDirectory) -> int:
        """Create jobs for enabled subscribers that have none.

        Existing durable jobs keep their ``next_run_at``, so a restart does not
        push deliveries back. Returns the number of jobs created.
        """
        subscribers = await asyncio.to_thread(lambda: list(directory.list_enabled()))
        created = 0
        for subscriber in subscribers:
            key = str(subscriber.key)
            if await self.find(key) is not None:
                continue
            try:
                await self.schedule(key, subscriber.interval_minutes)
            except InvalidIntervalError:
                logger.warning(
                    "scheduler.restore_skipped",
                    extra={"job_key": key, "interval_minutes": subscriber.interval_minutes},
                )
                continue
            created += 1

        logger.info(
            "scheduler.restored",
            extra={"enabled_subscribers": len(subscribers), "created": created},
        )
        return created
