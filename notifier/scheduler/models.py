"""Job record types, handler outcomes and the scheduled job table."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from notifier.core.db import Base

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 1440

DEFAULT_HANDLER_NAME = "deliver-notification"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class HandlerResult(str, enum.Enum):
    """Outcome reported by a delivery handler."""

    DELIVERED = "delivered"
    FAILED = "failed"
    SUBSCRIBER_GONE = "subscriber_gone"


@dataclass
class JobRecord:
    """Detached description of one subscriber's recurring schedule."""

    key: str
    handler_name: str
    interval_minutes: int
    next_run_at: datetime
    last_run_at: Optional[datetime] = None
    fail_count: int = 0
    active: bool = True
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    locked_by: Optional[str] = None
    locked_until: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        key: str,
        interval_minutes: int,
        *,
        now: datetime,
        handler_name: str = DEFAULT_HANDLER_NAME,
    ) -> "JobRecord":
        return cls(
            key=str(key),
            handler_name=handler_name,
            interval_minutes=int(interval_minutes),
            next_run_at=now + timedelta(minutes=int(interval_minutes)),
            created_at=now,
            updated_at=now,
        )

    @property
    def interval(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)

    def copy(self, **changes: Any) -> "JobRecord":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "handler_name": self.handler_name,
            "interval_minutes": self.interval_minutes,
            "next_run_at": _isoformat(self.next_run_at),
            "last_run_at": _isoformat(self.last_run_at),
            "fail_count": self.fail_count,
            "active": self.active,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
        }


class ScheduledJob(Base):
    __tablename__ = "scheduled_jobs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String(128), nullable=False, unique=True, index=True)
    handler_name = Column(String(128), nullable=False)
    interval_minutes = Column(Integer, nullable=False)

    next_run_at = Column(DateTime(timezone=True), nullable=False, index=True)
    last_run_at = Column(DateTime(timezone=True), nullable=True)
    fail_count = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)

    locked_by = Column(String(64), nullable=True)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    @classmethod
    def from_record(cls, record: JobRecord) -> "ScheduledJob":
        return cls(
            id=record.id,
            key=record.key,
            handler_name=record.handler_name,
            interval_minutes=record.interval_minutes,
            next_run_at=record.next_run_at,
            last_run_at=record.last_run_at,
            fail_count=record.fail_count,
            active=record.active,
            locked_by=record.locked_by,
            locked_until=record.locked_until,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_record(self) -> JobRecord:
        return JobRecord(
            id=self.id,
            key=self.key,
            handler_name=self.handler_name,
            interval_minutes=int(self.interval_minutes),
            next_run_at=as_utc(self.next_run_at),
            last_run_at=as_utc(self.last_run_at),
            fail_count=int(self.fail_count or 0),
            active=bool(self.active),
            locked_by=self.locked_by,
            locked_until=as_utc(self.locked_until),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )
