from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlalchemy.dialects.mysql import DATETIME as MySQLDateTime
from sqlmodel import Field, SQLModel


def _utc_now():
    return datetime.now(timezone.utc)


def timestamp_type():
    return DateTime(timezone=True).with_variant(MySQLDateTime(fsp=6), "mysql")


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class IDModel(SQLModel):
    id: Optional[int] = Field(default=None, primary_key=True, index=True)


class TimestampModel(SQLModel):
    created_at: datetime = Field(
        default_factory=_utc_now,
        sa_type=timestamp_type(),
        sa_column_kwargs={"nullable": False},
    )
    updated_at: datetime = Field(
        default_factory=_utc_now,
        sa_type=timestamp_type(),
        sa_column_kwargs={"nullable": False, "onupdate": _utc_now},
    )


def touch(record: TimestampModel) -> None:
    """Move ``updated_at`` forward, strictly past its previous value."""
    now = _utc_now()
    if record.updated_at is not None:
        previous = ensure_utc(record.updated_at)
        if now <= previous:
            now = previous + timedelta(microseconds=1)
    record.updated_at = now
