"""Job store interfaces and implementations.

The store is the persistence boundary of the scheduler. Every operation is
atomic for a single key; there are no cross-key transactions.

Two drivers are provided:
- ``InMemoryJobStore``: dictionary guarded by a lock (tests, ephemeral runs)
- ``SqlAlchemyJobStore``: durable table ``scheduled_jobs`` (SQLite by default)
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import sessionmaker

from notifier.core.errors import LockContention
from notifier.scheduler.models import JobRecord, ScheduledJob, utcnow


def _lock_contention(key: str, owner: Optional[str]) -> LockContention:
    return LockContention(
        code="job_locked",
        message=f"Job '{key}' is already being executed",
        details={"key": key, "owner": owner or "unknown"},
    )


class AbstractJobStore(ABC):
    @abstractmethod
    def upsert(self, record: JobRecord) -> JobRecord:
        """Insert ``record`` or replace the record stored for the same key."""

    @abstractmethod
    def get(self, key: str) -> Optional[JobRecord]:
        """Return the record for ``key`` or None."""

    @abstractmethod
    def cancel(self, key: str, *, job_id: Optional[str] = None) -> bool:
        """Remove the record for ``key``. Idempotent.

        When ``job_id`` is given, only that exact record is removed, so a
        stale cancel can't wipe a record created by a newer schedule.
        Returns True when something was removed.
        """

    @abstractmethod
    def find_due(self, now: datetime, *, limit: Optional[int] = None) -> Iterator[JobRecord]:
        """Lazily yield active records with ``next_run_at <= now``.

        Each call takes a fresh snapshot when iteration starts; it is not a
        live cursor.
        """

    @abstractmethod
    def mark_run(
        self,
        key: str,
        success: bool,
        next_run_at: datetime,
        *,
        job_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[JobRecord]:
        """Record the outcome of an execution and set the next due time.

        Success resets ``fail_count`` and stamps ``last_run_at``; failure
        increments ``fail_count``. Returns None when the record disappeared
        (or was replaced) while the handler was running.
        """

    @abstractmethod
    def acquire_lock(self, key: str, owner: str, *, lease_until: datetime, now: datetime) -> bool:
        """Take the execution lock for ``key`` until ``lease_until``.

        Returns False when the record no longer exists.

        Raises:
            LockContention: If another owner holds an unexpired lease.
        """

    @abstractmethod
    def release_lock(self, key: str, owner: str) -> None:
        """Release the lock if ``owner`` still holds it."""

    @abstractmethod
    def count_active(self) -> int:
        """Number of records the runner still picks up."""

    @abstractmethod
    def list_jobs(self) -> List[JobRecord]:
        """All records ordered by next due time."""


def _apply_run(record: JobRecord, success: bool, next_run_at: datetime, now: datetime) -> None:
    if success:
        record.fail_count = 0
        record.last_run_at = now
    else:
        record.fail_count += 1
    record.next_run_at = next_run_at
    record.updated_at = now


class InMemoryJobStore(AbstractJobStore):
    """Thread-safe dictionary store; loses everything on restart."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._jobs: dict[str, JobRecord] = {}

    def upsert(self, record: JobRecord) -> JobRecord:
        with self._lock:
            self._jobs[record.key] = record.copy()
            return record.copy()

    def get(self, key: str) -> Optional[JobRecord]:
        with self._lock:
            record = self._jobs.get(str(key))
            return record.copy() if record else None

    def cancel(self, key: str, *, job_id: Optional[str] = None) -> bool:
        with self._lock:
            record = self._jobs.get(str(key))
            if record is None or (job_id is not None and record.id != job_id):
                return False
            del self._jobs[str(key)]
            return True

    def find_due(self, now: datetime, *, limit: Optional[int] = None) -> Iterator[JobRecord]:
        with self._lock:
            due = sorted(
                (r.copy() for r in self._jobs.values() if r.active and r.next_run_at <= now),
                key=lambda r: r.next_run_at,
            )
        if limit is not None:
            due = due[: int(limit)]
        yield from due

    def mark_run(
        self,
        key: str,
        success: bool,
        next_run_at: datetime,
        *,
        job_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[JobRecord]:
        with self._lock:
            record = self._jobs.get(str(key))
            if record is None or (job_id is not None and record.id != job_id):
                return None
            _apply_run(record, success, next_run_at, now or utcnow())
            return record.copy()

    def acquire_lock(self, key: str, owner: str, *, lease_until: datetime, now: datetime) -> bool:
        with self._lock:
            record = self._jobs.get(str(key))
            if record is None:
                return False
            held = record.locked_until is not None and record.locked_until > now
            if held and record.locked_by != owner:
                raise _lock_contention(key, record.locked_by)
            record.locked_by = owner
            record.locked_until = lease_until
            return True

    def release_lock(self, key: str, owner: str) -> None:
        with self._lock:
            record = self._jobs.get(str(key))
            if record is not None and record.locked_by == owner:
                record.locked_by = None
                record.locked_until = None

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for r in self._jobs.values() if r.active)

    def list_jobs(self) -> List[JobRecord]:
        with self._lock:
            return sorted((r.copy() for r in self._jobs.values()), key=lambda r: r.next_run_at)


class SqlAlchemyJobStore(AbstractJobStore):
    """Durable store backed by the ``scheduled_jobs`` table."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._sessions = session_factory

    def upsert(self, record: JobRecord) -> JobRecord:
        with self._sessions() as s:
            # Delete + insert in one transaction keeps "one row per key"
            # without a window where the key has no record.
            s.execute(delete(ScheduledJob).where(ScheduledJob.key == record.key))
            s.flush()
            s.add(ScheduledJob.from_record(record))
            s.commit()
        return record.copy()

    def get(self, key: str) -> Optional[JobRecord]:
        with self._sessions() as s:
            row = s.execute(select(ScheduledJob).where(ScheduledJob.key == str(key))).scalar_one_or_none()
            return row.to_record() if row else None

    def cancel(self, key: str, *, job_id: Optional[str] = None) -> bool:
        stmt = delete(ScheduledJob).where(ScheduledJob.key == str(key))
        if job_id is not None:
            stmt = stmt.where(ScheduledJob.id == job_id)
        with self._sessions() as s:
            result = s.execute(stmt)
            s.commit()
            return bool(result.rowcount)

    def find_due(self, now: datetime, *, limit: Optional[int] = None) -> Iterator[JobRecord]:
        q = (
            select(ScheduledJob)
            .where(ScheduledJob.active.is_(True))
            .where(ScheduledJob.next_run_at <= now)
            .order_by(ScheduledJob.next_run_at.asc())
        )
        if limit is not None:
            q = q.limit(int(limit))
        with self._sessions() as s:
            rows = s.execute(q).scalars().all()
            records = [row.to_record() for row in rows]
        yield from records

    def mark_run(
        self,
        key: str,
        success: bool,
        next_run_at: datetime,
        *,
        job_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[JobRecord]:
        now = now or utcnow()
        with self._sessions() as s:
            q = select(ScheduledJob).where(ScheduledJob.key == str(key))
            if job_id is not None:
                q = q.where(ScheduledJob.id == job_id)
            row = s.execute(q.with_for_update()).scalar_one_or_none()
            if row is None:
                return None
            if success:
                row.fail_count = 0
                row.last_run_at = now
            else:
                row.fail_count = int(row.fail_count or 0) + 1
            row.next_run_at = next_run_at
            row.updated_at = now
            s.commit()
            return row.to_record()

    def acquire_lock(self, key: str, owner: str, *, lease_until: datetime, now: datetime) -> bool:
        stmt = (
            update(ScheduledJob)
            .where(ScheduledJob.key == str(key))
            .where(
                or_(
                    ScheduledJob.locked_until.is_(None),
                    ScheduledJob.locked_until <= now,
                    ScheduledJob.locked_by == owner,
                )
            )
            .values(locked_by=owner, locked_until=lease_until)
        )
        with self._sessions() as s:
            result = s.execute(stmt)
            s.commit()
            if result.rowcount:
                return True
            holder = s.execute(
                select(ScheduledJob.locked_by).where(ScheduledJob.key == str(key))
            ).scalar_one_or_none()
        if holder is None:
            return False
        raise _lock_contention(key, holder)

    def release_lock(self, key: str, owner: str) -> None:
        stmt = (
            update(ScheduledJob)
            .where(ScheduledJob.key == str(key))
            .where(ScheduledJob.locked_by == owner)
            .values(locked_by=None, locked_until=None)
        )
        with self._sessions() as s:
            s.execute(stmt)
            s.commit()

    def count_active(self) -> int:
        with self._sessions() as s:
            return int(
                s.execute(
                    select(func.count()).select_from(ScheduledJob).where(ScheduledJob.active.is_(True))
                ).scalar_one()
            )

    def list_jobs(self) -> List[JobRecord]:
        with self._sessions() as s:
            rows = s.execute(select(ScheduledJob).order_by(ScheduledJob.next_run_at.asc())).scalars().all()
            return [row.to_record() for row in rows]
