from fastapi import APIRouter, Depends, status

from meeting_scheduler.deps import get_auth_context, get_meeting_service, json_body
from meeting_scheduler.schemas.meetings import (
    Ack,
    MeetingCreate,
    MeetingEnvelope,
    MeetingList,
    MeetingMutation,
    MeetingUpdate,
    ParticipantAdd,
    ParticipantList,
)
from meeting_scheduler.services.identity import AuthContext
from meeting_scheduler.services.meetings import MeetingService, to_read_model

router = APIRouter(prefix="/api/meetings", tags=["meetings"])

# Bodies are read after the authentication gate has passed
create_body = json_body(MeetingCreate)
update_body = json_body(MeetingUpdate)
participant_body = json_body(ParticipantAdd)


@router.post("", response_model=MeetingMutation, status_code=status.HTTP_201_CREATED)
def create_meeting(
    ctx: AuthContext = Depends(get_auth_context),
    payload: MeetingCreate = Depends(create_body),
    meetings: MeetingService = Depends(get_meeting_service),
):
    record = meetings.create(ctx, payload)
    return MeetingMutation(message="Meeting created successfully", meeting=to_read_model(record))


@router.get("", response_model=MeetingList)
def list_owned_meetings(
    ctx: AuthContext = Depends(get_auth_context),
    meetings: MeetingService = Depends(get_meeting_service),
):
    return MeetingList(meetings=[to_read_model(r) for r in meetings.list_owned(ctx)])


# Declared before /{meeting_id} so "participating" is not taken for an id
@router.get("/participating", response_model=MeetingList)
def list_participating_meetings(
    ctx: AuthContext = Depends(get_auth_context),
    meetings: MeetingService = Depends(get_meeting_service),
):
    return MeetingList(meetings=[to_read_model(r) for r in meetings.list_participating(ctx)])


@router.get("/{meeting_id}", response_model=MeetingEnvelope)
def get_meeting(
    meeting_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    meetings: MeetingService = Depends(get_meeting_service),
):
    return MeetingEnvelope(meeting=to_read_model(meetings.get(ctx, meeting_id)))


@router.put("/{meeting_id}", response_model=MeetingMutation)
def update_meeting(
    meeting_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    payload: MeetingUpdate = Depends(update_body),
    meetings: MeetingService = Depends(get_meeting_service),
):
    record = meetings.update(ctx, meeting_id, payload)
    return MeetingMutation(message="Meeting updated successfully", meeting=to_read_model(record))


@router.delete("/{meeting_id}", response_model=Ack)
def delete_meeting(
    meeting_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    meetings: MeetingService = Depends(get_meeting_service),
):
    meetings.delete(ctx, meeting_id)
    return Ack(message="Meeting deleted successfully")


@router.post("/{meeting_id}/participants", response_model=ParticipantList)
def add_participant(
    meeting_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    payload: ParticipantAdd = Depends(participant_body),
    meetings: MeetingService = Depends(get_meeting_service),
):
    participants = meetings.add_participant(ctx, meeting_id, payload.participant_id)
    return ParticipantList(message="Participant added successfully", participants=participants)


@router.delete("/{meeting_id}/participants/{participant_id}", response_model=ParticipantList)
def remove_participant(
    meeting_id: str,
    participant_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    meetings: MeetingService = Depends(get_meeting_service),
):
    participants = meetings.remove_participant(ctx, meeting_id, participant_id)
    return ParticipantList(message="Participant removed successfully", participants=participants)
