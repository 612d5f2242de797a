from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from meeting_scheduler.core.errors import BadRequestError, ForbiddenError, ServerError
from meeting_scheduler.schemas.meetings import MeetingCreate, MeetingUpdate
from meeting_scheduler.services.identity import AuthContext, VerifiedIdentity
from meeting_scheduler.services.meeting_store import SqlMeetingStore
from meeting_scheduler.services.meetings import (
    MeetingService,
    isoformat_utc,
    parse_meeting_date,
    unique_participants,
)


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


def _ctx(uid: str) -> AuthContext:
    return AuthContext(identity=VerifiedIdentity(uid=uid))


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc))


@pytest.fixture()
def service(tmp_path, clock) -> MeetingService:
    store = SqlMeetingStore.from_url(f"sqlite:///{tmp_path / 'svc.db'}", create_schema=True)
    return MeetingService(store, clock=clock)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2025-01-02T10:00:00Z", "2025-01-02T10:00:00.000Z"),
        ("2025-01-02T10:00:00.500z", "2025-01-02T10:00:00.500Z"),
        ("2025-01-02T10:00:00.5Z", "2025-01-02T10:00:00.500Z"),
        (" 2025-01-02 ", "2025-01-02T00:00:00.000Z"),
        ("2025-01-02T10:00:00-05:00", "2025-01-02T15:00:00.000Z"),
        (0, "1970-01-01T00:00:00.000Z"),
        (1500.0, "1970-01-01T00:00:01.500Z"),
    ],
)
def test_parse_meeting_date(value, expected):
    assert parse_meeting_date(value) == expected


@pytest.mark.parametrize("value", ["", "tomorrow", "2025-02-30", False, float("nan"), 10**20, None, {}])
def test_parse_meeting_date_rejects(value):
    with pytest.raises(BadRequestError) as exc_info:
        parse_meeting_date(value)
    assert exc_info.value.message == "Invalid date format"


def test_isoformat_utc_treats_naive_as_utc():
    assert isoformat_utc(datetime(2025, 1, 1, 8, 30)) == "2025-01-01T08:30:00.000Z"
    tz = timezone(timedelta(hours=2))
    assert isoformat_utc(datetime(2025, 1, 1, 8, 30, tzinfo=tz)) == "2025-01-01T06:30:00.000Z"


def test_unique_participants_keeps_first_occurrence():
    assert unique_participants(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
    with pytest.raises(BadRequestError):
        unique_participants(["a", "  "])


def test_create_uses_clock_for_defaults(service, clock):
    record = service.create(_ctx("alice"), MeetingCreate(title="Standup"))
    assert record.id
    assert record.date == "2025-01-01T12:00:00.123Z"
    assert record.created_at == record.updated_at == datetime(2025, 1, 1, 12, 0, 0, 123000, tzinfo=timezone.utc)


def test_updated_at_strictly_increases_with_a_stopped_clock(service):
    ctx = _ctx("alice")
    record = service.create(ctx, MeetingCreate(title="Standup"))

    first = service.update(ctx, record.id, MeetingUpdate(location="A"))
    second = service.update(ctx, record.id, MeetingUpdate(location="B"))

    assert record.created_at < first.updated_at < second.updated_at
    assert second.created_at == record.created_at


def test_update_distinguishes_absent_from_null(service):
    ctx = _ctx("alice")
    record = service.create(ctx, MeetingCreate(title="Standup", notes="keep me", location="HQ"))

    updated = service.update(ctx, record.id, MeetingUpdate.model_validate({"location": None}))
    assert updated.location == ""
    assert updated.notes == "keep me"


def test_blank_date_counts_as_not_supplied(service):
    ctx = _ctx("alice")
    record = service.create(ctx, MeetingCreate(title="Standup", date=""))
    assert record.date == "2025-01-01T12:00:00.123Z"

    moved = service.update(ctx, record.id, MeetingUpdate(date="2025-03-01T09:00:00Z"))
    kept = service.update(ctx, record.id, MeetingUpdate.model_validate({"date": None}))
    assert kept.date == moved.date == "2025-03-01T09:00:00.000Z"


def test_concurrent_updates_last_write_wins(service):
    ctx = _ctx("alice")
    record = service.create(ctx, MeetingCreate(title="Standup"))

    service.update(ctx, record.id, MeetingUpdate(title="First"))
    service.update(ctx, record.id, MeetingUpdate(title="Second"))
    assert service.get(ctx, record.id).title == "Second"


def test_permission_errors(service):
    record = service.create(_ctx("alice"), MeetingCreate(title="Private", participants=["bob"]))

    with pytest.raises(ForbiddenError):
        service.get(_ctx("mallory"), record.id)
    with pytest.raises(ForbiddenError):
        service.delete(_ctx("bob"), record.id)
    with pytest.raises(ForbiddenError):
        service.add_participant(_ctx("bob"), record.id, "carol")

    assert service.remove_participant(_ctx("bob"), record.id, "bob") == []


def test_store_errors_become_server_errors(service, monkeypatch):
    def broken(record):
        raise ConnectionError("store unavailable")

    monkeypatch.setattr(service.store, "create", broken)

    with pytest.raises(ServerError) as exc_info:
        service.create(_ctx("alice"), MeetingCreate(title="Standup"))
    assert exc_info.value.message == "Failed to create meeting"
    assert exc_info.value.details == "store unavailable"
