from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class MeetingCreate(_CamelModel):
    title: Optional[str] = None
    # Parsed by the service so every unparseable value gets the same 400
    date: Any = None
    location: Optional[str] = None
    notes: Optional[str] = None
    participants: Optional[list[str]] = None


class MeetingUpdate(_CamelModel):
    """
    Partial update. A field left out of the JSON body keeps its stored value;
    `model_fields_set` tells an explicit null apart from an absent key.
    """

    title: Optional[str] = None
    date: Any = None
    location: Optional[str] = None
    notes: Optional[str] = None
    participants: Optional[list[str]] = None


class ParticipantAdd(_CamelModel):
    participant_id: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class MeetingRead(_CamelModel):
    id: str
    title: str
    date: str
    location: str = ""
    notes: str = ""
    participants: list[str] = []
    created_by: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class MeetingEnvelope(_CamelModel):
    meeting: MeetingRead


class MeetingMutation(_CamelModel):
    success: bool = True
    message: str
    meeting: MeetingRead


class MeetingList(_CamelModel):
    meetings: list[MeetingRead]


class ParticipantList(_CamelModel):
    success: bool = True
    message: str
    participants: list[str]


class Ack(_CamelModel):
    success: bool = True
    message: str
