"""Firebase-backed collaborators: ID-token verification and Firestore storage."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

import firebase_admin
from firebase_admin import auth, credentials, firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from meeting_scheduler.core.settings import Settings
from meeting_scheduler.logging_utils import get_logger
from meeting_scheduler.services.identity import (
    InvalidCredentialError,
    VerifiedIdentity,
    identity_from_claims,
)
from meeting_scheduler.services.meeting_store import MeetingRecord, as_utc, check_changes

logger = get_logger(__name__)

# Record attribute -> Firestore document field
FIELD_NAMES = {
    "title": "title",
    "date": "date",
    "location": "location",
    "notes": "notes",
    "participants": "participants",
    "created_by": "createdBy",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


def init_firebase_app(settings: Settings) -> firebase_admin.App:
    """Initialise the default Firebase app once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.FIREBASE_CREDENTIALS:
        cred = credentials.Certificate(settings.FIREBASE_CREDENTIALS)
    else:
        cred = credentials.ApplicationDefault()

    options: dict[str, Any] = {}
    if settings.FIREBASE_PROJECT_ID:
        options["projectId"] = settings.FIREBASE_PROJECT_ID
    if settings.FIREBASE_STORAGE_BUCKET:
        options["storageBucket"] = settings.FIREBASE_STORAGE_BUCKET

    app = firebase_admin.initialize_app(cred, options)
    logger.info("firebase initialised", extra={"project_id": settings.FIREBASE_PROJECT_ID})
    return app


class FirebaseIdentityVerifier:
    def __init__(self, app: Optional[firebase_admin.App] = None, check_revoked: bool = False) -> None:
        self._app = app
        self._check_revoked = check_revoked

    def verify(self, token: str) -> VerifiedIdentity:
        try:
            claims = auth.verify_id_token(token, app=self._app, check_revoked=self._check_revoked)
        except (auth.InvalidIdTokenError, auth.UserDisabledError) as exc:
            # Expired and revoked tokens are InvalidIdTokenError subclasses
            raise InvalidCredentialError(str(exc)) from exc
        except ValueError as exc:
            # Raised for empty or non-string tokens
            raise InvalidCredentialError(str(exc)) from exc
        # CertificateFetchError and other FirebaseErrors propagate as server failures
        return identity_from_claims(claims)


def _from_document(doc_id: str, data: Mapping[str, Any]) -> MeetingRecord:
    created_at = data.get("createdAt")
    updated_at = data.get("updatedAt") or created_at
    return MeetingRecord(
        id=doc_id,
        title=data.get("title", ""),
        date=data.get("date", ""),
        location=data.get("location") or "",
        notes=data.get("notes") or "",
        participants=list(data.get("participants") or []),
        created_by=data.get("createdBy", ""),
        created_at=as_utc(created_at) if isinstance(created_at, datetime) else created_at,
        updated_at=as_utc(updated_at) if isinstance(updated_at, datetime) else updated_at,
    )


class FirestoreMeetingStore:
    """Meetings as documents in a single Firestore collection."""

    def __init__(self, client: Any, collection: str = "meetings") -> None:
        self._client = client
        self._collection_name = collection

    @classmethod
    def from_app(cls, app: firebase_admin.App, collection: str = "meetings") -> "FirestoreMeetingStore":
        return cls(firestore.client(app), collection)

    @property
    def _collection(self) -> Any:
        return self._client.collection(self._collection_name)

    def create(self, record: MeetingRecord) -> MeetingRecord:
        data = {FIELD_NAMES[name]: getattr(record, name) for name in FIELD_NAMES}
        _, ref = self._collection.add(data)
        return _from_document(ref.id, data)

    def get(self, meeting_id: str) -> Optional[MeetingRecord]:
        snap = self._collection.document(meeting_id).get()
        if not snap.exists:
            return None
        return _from_document(snap.id, snap.to_dict() or {})

    def list_by_owner(self, uid: str) -> list[MeetingRecord]:
        query = (
            self._collection.where(filter=FieldFilter("createdBy", "==", uid))
            .order_by("date", direction=firestore.Query.ASCENDING)
        )
        return [_from_document(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def list_by_participant(self, uid: str) -> list[MeetingRecord]:
        query = self._collection.where(filter=FieldFilter("participants", "array_contains", uid))
        return [_from_document(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def update(self, meeting_id: str, changes: Mapping[str, Any]) -> None:
        check_changes(changes)
        payload = {FIELD_NAMES[name]: value for name, value in changes.items()}
        self._collection.document(meeting_id).update(payload)

    def delete(self, meeting_id: str) -> None:
        self._collection.document(meeting_id).delete()

    def ping(self) -> None:
        # Cheapest authenticated round trip: read at most one document id
        list(self._collection.limit(1).select([]).stream())
