from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import Text, cast, create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from meeting_scheduler.logging_utils import get_logger
from meeting_scheduler.models import Base
from meeting_scheduler.models.meeting import Meeting

logger = get_logger(__name__)

# Fields a caller may pass to MeetingStore.update()
MUTABLE_FIELDS = frozenset({"title", "date", "location", "notes", "participants", "updated_at"})


@dataclass
class MeetingRecord:
    title: str
    date: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    location: str = ""
    notes: str = ""
    participants: list[str] = field(default_factory=list)
    id: Optional[str] = None


class MeetingStore(Protocol):
    def create(self, record: MeetingRecord) -> MeetingRecord:
        ...

    def get(self, meeting_id: str) -> Optional[MeetingRecord]:
        ...

    def list_by_owner(self, uid: str) -> list[MeetingRecord]:
        ...

    def list_by_participant(self, uid: str) -> list[MeetingRecord]:
        ...

    def update(self, meeting_id: str, changes: Mapping[str, Any]) -> None:
        ...

    def delete(self, meeting_id: str) -> None:
        ...

    def ping(self) -> None:
        ...


def check_changes(changes: Mapping[str, Any]) -> None:
    unknown = set(changes) - MUTABLE_FIELDS
    if unknown:
        raise ValueError(f"fields cannot be updated: {sorted(unknown)}")


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def build_engine(url: str) -> Engine:
    common_kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        # Required for SQLite with multi-threaded FastAPI
        return create_engine(url, connect_args={"check_same_thread": False}, **common_kwargs)
    return create_engine(url, pool_recycle=1800, **common_kwargs)


class SqlMeetingStore:
    """Meeting storage on a relational database through SQLAlchemy."""

    def __init__(self, engine: Engine, create_schema: bool = False) -> None:
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)
        if create_schema:
            Base.metadata.create_all(bind=engine)

    @classmethod
    def from_url(cls, url: str, create_schema: bool = False) -> "SqlMeetingStore":
        return cls(build_engine(url), create_schema=create_schema)

    @staticmethod
    def _to_record(row: Meeting) -> MeetingRecord:
        return MeetingRecord(
            id=row.id,
            title=row.title,
            date=row.date,
            location=row.location or "",
            notes=row.notes or "",
            participants=list(row.participants or []),
            created_by=row.created_by,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def create(self, record: MeetingRecord) -> MeetingRecord:
        row = Meeting(
            title=record.title,
            date=record.date,
            location=record.location,
            notes=record.notes,
            participants=list(record.participants),
            created_by=record.created_by,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        with self._sessions() as session:
            session.add(row)
            session.commit()
            logger.debug("meeting row inserted", extra={"meeting_id": row.id})
            return replace(record, id=row.id)

    def get(self, meeting_id: str) -> Optional[MeetingRecord]:
        with self._sessions() as session:
            row = session.get(Meeting, meeting_id)
            return self._to_record(row) if row is not None else None

    def list_by_owner(self, uid: str) -> list[MeetingRecord]:
        stmt = select(Meeting).where(Meeting.created_by == uid).order_by(Meeting.date.asc())
        with self._sessions() as session:
            return [self._to_record(row) for row in session.scalars(stmt)]

    def list_by_participant(self, uid: str) -> list[MeetingRecord]:
        # JSON membership is not portable across dialects: narrow the rows with a
        # LIKE on the serialized array, then check membership exactly.
        needle = json.dumps(uid)
        stmt = (
            select(Meeting)
            .where(cast(Meeting.participants, Text).contains(needle, autoescape=True))
            .order_by(Meeting.date.asc())
        )
        with self._sessions() as session:
            rows = session.scalars(stmt).all()
            return [self._to_record(row) for row in rows if uid in (row.participants or [])]

    def update(self, meeting_id: str, changes: Mapping[str, Any]) -> None:
        check_changes(changes)
        with self._sessions() as session:
            row = session.get(Meeting, meeting_id)
            if row is None:
                raise LookupError(f"meeting {meeting_id} does not exist")
            for name, value in changes.items():
                setattr(row, name, list(value) if name == "participants" else value)
            session.commit()

    def delete(self, meeting_id: str) -> None:
        with self._sessions() as session:
            row = session.get(Meeting, meeting_id)
            if row is not None:
                session.delete(row)
                session.commit()

    def ping(self) -> None:
        with self._sessions() as session:
            session.execute(text("SELECT 1"))

