"""Meeting operations: validation, ownership rules and store calls.

Every operation is a single read-then-conditionally-write against the
store. Nothing is locked between the read and the write, so two concurrent
updates of the same meeting both succeed and the later write wins.
"""

from __future__ import annotations

import math
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Iterator, Optional

from meeting_scheduler.core.errors import (
    ApiError,
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    operation_guard,
)
from meeting_scheduler.logging_utils import get_logger
from meeting_scheduler.metrics import MEETING_OPERATIONS
from meeting_scheduler.schemas.meetings import MeetingCreate, MeetingRead, MeetingUpdate
from meeting_scheduler.services.identity import AuthContext
from meeting_scheduler.services.meeting_store import MeetingRecord, MeetingStore

logger = get_logger(__name__)

Clock = Callable[[], datetime]

INVALID_DATE = "Invalid date format"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def isoformat_utc(value: datetime) -> str:
    """Render like JavaScript's toISOString(): 2025-01-02T10:00:00.000Z."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_meeting_date(value: Any) -> str:
    """
    Normalise a client-supplied date into the stored form.

    Accepts ISO-8601 strings (date-only and naive values are read as UTC)
    and epoch milliseconds. Raises BadRequestError for anything else.
    """
    if isinstance(value, bool):
        raise BadRequestError(INVALID_DATE)

    try:
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError("non-finite timestamp")
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
        else:
            raise ValueError(f"unsupported date type {type(value).__name__}")
        return isoformat_utc(parsed)
    except (ValueError, OverflowError, OSError) as exc:
        raise BadRequestError(INVALID_DATE, details=str(exc)) from exc


def _date_given(value: Any) -> bool:
    # null and "" mean "not supplied"
    return value is not None and value != ""


def unique_participants(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if not value.strip():
            raise BadRequestError("Participant IDs must be non-empty strings")
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def to_read_model(record: MeetingRecord) -> MeetingRead:
    return MeetingRead(
        id=record.id or "",
        title=record.title,
        date=record.date,
        location=record.location,
        notes=record.notes,
        participants=list(record.participants),
        created_by=record.created_by,
        created_at=isoformat_utc(record.created_at) if record.created_at else None,
        updated_at=isoformat_utc(record.updated_at) if record.updated_at else None,
    )


class MeetingService:
    def __init__(self, store: MeetingStore, clock: Clock = utc_now) -> None:
        self.store = store
        self._clock = clock

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str, failure_message: str) -> Iterator[None]:
        outcome = "ok"
        try:
            with operation_guard(failure_message):
                yield
        except ApiError as exc:
            outcome = str(exc.status_code)
            raise
        finally:
            MEETING_OPERATIONS.labels(operation=name, outcome=outcome).inc()

    def _now(self) -> datetime:
        # Millisecond precision, the same resolution the API renders
        now = self._clock()
        return now.replace(microsecond=now.microsecond // 1000 * 1000)

    def _next_timestamp(self, previous: Optional[datetime]) -> datetime:
        now = self._now()
        if previous is not None and now <= previous:
            now = previous + timedelta(milliseconds=1)
        return now

    def _load(self, meeting_id: str) -> MeetingRecord:
        record = self.store.get(meeting_id)
        if record is None:
            raise NotFoundError("Meeting not found")
        return record

    @staticmethod
    def _require_title(title: Optional[str]) -> str:
        if title is None or not title.strip():
            raise BadRequestError("Meeting title is required")
        return title

    # ------------------------------------------------------------------
    # operations
    # ------------------------------------------------------------------

    def create(self, ctx: AuthContext, payload: MeetingCreate) -> MeetingRecord:
        with self._operation("create", "Failed to create meeting"):
            title = self._require_title(payload.title)
            now = self._now()
            date = parse_meeting_date(payload.date) if _date_given(payload.date) else isoformat_utc(now)

            record = MeetingRecord(
                title=title,
                date=date,
                location=payload.location or "",
                notes=payload.notes or "",
                participants=unique_participants(payload.participants or []),
                created_by=ctx.uid,
                created_at=now,
                updated_at=now,
            )
            created = self.store.create(record)
            logger.info("meeting created", extra={"meeting_id": created.id})
            return created

    def list_owned(self, ctx: AuthContext) -> list[MeetingRecord]:
        with self._operation("list_owned", "Failed to retrieve meetings"):
            return self.store.list_by_owner(ctx.uid)

    def list_participating(self, ctx: AuthContext) -> list[MeetingRecord]:
        with self._operation("list_participating", "Failed to retrieve meetings"):
            return self.store.list_by_participant(ctx.uid)

    def get(self, ctx: AuthContext, meeting_id: str) -> MeetingRecord:
        with self._operation("get", "Failed to retrieve meeting"):
            record = self._load(meeting_id)
            if record.created_by != ctx.uid and ctx.uid not in record.participants:
                raise ForbiddenError("You do not have access to this meeting")
            return record

    def update(self, ctx: AuthContext, meeting_id: str, payload: MeetingUpdate) -> MeetingRecord:
        with self._operation("update", "Failed to update meeting"):
            record = self._load(meeting_id)
            if record.created_by != ctx.uid:
                raise ForbiddenError("Only the meeting creator can update it")

            supplied = payload.model_fields_set
            changes: dict[str, Any] = {}
            if "title" in supplied:
                changes["title"] = self._require_title(payload.title)
            if "date" in supplied and _date_given(payload.date):
                changes["date"] = parse_meeting_date(payload.date)
            if "location" in supplied:
                changes["location"] = payload.location or ""
            if "notes" in supplied:
                changes["notes"] = payload.notes or ""
            if "participants" in supplied:
                changes["participants"] = unique_participants(payload.participants or [])
            changes["updated_at"] = self._next_timestamp(record.updated_at)

            self.store.update(meeting_id, changes)
            logger.info("meeting updated", extra={"meeting_id": meeting_id, "fields": sorted(changes)})
            return self._load(meeting_id)

    def delete(self, ctx: AuthContext, meeting_id: str) -> None:
        with self._operation("delete", "Failed to delete meeting"):
            record = self._load(meeting_id)
            if record.created_by != ctx.uid:
                raise ForbiddenError("Only the meeting creator can delete it")
            self.store.delete(meeting_id)
            logger.info("meeting deleted", extra={"meeting_id": meeting_id})

    def add_participant(self, ctx: AuthContext, meeting_id: str, participant_id: Optional[str]) -> list[str]:
        with self._operation("add_participant", "Failed to add participant"):
            if participant_id is None or not participant_id.strip():
                raise BadRequestError("Participant ID is required")

            record = self._load(meeting_id)
            if record.created_by != ctx.uid:
                raise ForbiddenError("Only the meeting creator can add participants")
            if participant_id in record.participants:
                raise BadRequestError("Participant is already in this meeting")

            participants = [*record.participants, participant_id]
            self.store.update(
                meeting_id,
                {"participants": participants, "updated_at": self._next_timestamp(record.updated_at)},
            )
            logger.info("participant added", extra={"meeting_id": meeting_id, "participant_id": participant_id})
            return participants

    def remove_participant(self, ctx: AuthContext, meeting_id: str, participant_id: str) -> list[str]:
        with self._operation("remove_participant", "Failed to remove participant"):
            record = self._load(meeting_id)
            if record.created_by != ctx.uid and ctx.uid != participant_id:
                raise ForbiddenError("Only the meeting creator or the participant can remove a participant")
            if participant_id not in record.participants:
                raise BadRequestError("Participant is not in this meeting")

            participants = [p for p in record.participants if p != participant_id]
            self.store.update(
                meeting_id,
                {"participants": participants, "updated_at": self._next_timestamp(record.updated_at)},
            )
            logger.info(
                "participant removed",
                extra={"meeting_id": meeting_id, "participant_id": participant_id, "self_removal": ctx.uid == participant_id},
            )
            return participants
