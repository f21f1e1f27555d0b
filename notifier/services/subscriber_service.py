"""Subscriber directory backed by the ``subscribers`` table.

A subscriber is one Telegram chat. The directory only stores preferences
(enabled flag, interval, last delivery); the recurring job itself lives in
the scheduler's job store.

Methods are synchronous; async callers run them through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String, delete, select
from sqlalchemy.orm import sessionmaker

from notifier.core.db import Base
from notifier.core.errors import NotFoundError
from notifier.scheduler.facade import validate_interval
from notifier.scheduler.models import as_utc, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MINUTES = 1


class Subscriber(Base):
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(128), nullable=False, unique=True, index=True)
    enabled = Column(Boolean, default=True, nullable=False)
    interval_minutes = Column(Integer, default=DEFAULT_INTERVAL_MINUTES, nullable=False)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def last_sent(self) -> Optional[datetime]:
        return as_utc(self.last_sent_at)


def _not_found(key: str) -> NotFoundError:
    return NotFoundError(
        code="subscriber_not_found",
        message=f"Subscriber '{key}' not found",
        details={"resource": "subscriber", "key": key},
    )


class SubscriberService:
    """CRUD over subscribers plus the lookups the delivery handler needs."""

    def __init__(self, session_factory: sessionmaker, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._sessions = session_factory
        self._clock = clock

    def find_or_create(self, key: str) -> Subscriber:
        """Return the subscriber for ``key``, creating an enabled one if missing."""
        key = str(key)
        with self._sessions() as s:
            row = s.execute(select(Subscriber).where(Subscriber.key == key)).scalar_one_or_none()
            if row is not None:
                return row
            now = self._clock()
            row = Subscriber(
                key=key,
                enabled=True,
                interval_minutes=DEFAULT_INTERVAL_MINUTES,
                created_at=now,
                updated_at=now,
            )
            s.add(row)
            s.commit()
            logger.info("subscriber.created", extra={"job_key": key})
            return row

    def get(self, key: str) -> Optional[Subscriber]:
        with self._sessions() as s:
            return s.execute(select(Subscriber).where(Subscriber.key == str(key))).scalar_one_or_none()

    def is_active(self, key: str) -> bool:
        """True when the subscriber exists and has deliveries enabled."""
        row = self.get(key)
        return bool(row is not None and row.enabled)

    def get_interval(self, key: str) -> int:
        row = self.get(key)
        if row is None:
            raise _not_found(str(key))
        return int(row.interval_minutes)

    def _update(self, key: str, **values) -> Subscriber:
        key = str(key)
        with self._sessions() as s:
            row = s.execute(select(Subscriber).where(Subscriber.key == key)).scalar_one_or_none()
            if row is None:
                raise _not_found(key)
            for name, value in values.items():
                setattr(row, name, value)
            row.updated_at = self._clock()
            s.commit()
            return row

    def enable(self, key: str) -> Subscriber:
        return self._update(key, enabled=True)

    def disable(self, key: str) -> Subscriber:
        return self._update(key, enabled=False)

    def set_interval(self, key: str, interval_minutes: int) -> Subscriber:
        """Store a new interval.

        Raises:
            InvalidIntervalError: When the value is outside 1..1440.
            NotFoundError: When the subscriber does not exist.
        """
        interval = validate_interval(interval_minutes)
        return self._update(key, interval_minutes=interval)

    def mark_delivered(self, key: str, when: Optional[datetime] = None) -> Subscriber:
        return self._update(key, last_sent_at=when or self._clock())

    def list_enabled(self) -> List[Subscriber]:
        with self._sessions() as s:
            rows = s.execute(
                select(Subscriber).where(Subscriber.enabled.is_(True)).order_by(Subscriber.id.asc())
            ).scalars().all()
            return list(rows)

    def delete(self, key: str) -> bool:
        with self._sessions() as s:
            result = s.execute(delete(Subscriber).where(Subscriber.key == str(key)))
            s.commit()
            return bool(result.rowcount)
