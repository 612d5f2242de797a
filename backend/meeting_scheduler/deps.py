# meeting_scheduler/deps.py
from __future__ import annotations

import json
from typing import Any, Callable, Optional

from fastapi import Depends, Header, Request
from pydantic import BaseModel, ValidationError
from starlette.concurrency import run_in_threadpool

from meeting_scheduler.core.errors import BadRequestError, ServerError, UnauthorizedError, validation_details
from meeting_scheduler.logging_utils import bind_user_context, current_request_id, get_logger
from meeting_scheduler.metrics import AUTH_FAILURES
from meeting_scheduler.services.identity import AuthContext, IdentityVerifier, InvalidCredentialError
from meeting_scheduler.services.meetings import MeetingService

log = get_logger(__name__)

BEARER_PREFIX = "Bearer "


def get_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.verifier


def get_meeting_service(request: Request) -> MeetingService:
    return request.app.state.meetings


async def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> AuthContext:
    """
    Authentication gate for every meeting route.

    Reads `Authorization: Bearer <token>`, hands the token to the configured
    IdentityVerifier and returns the caller's AuthContext. Runs before the
    route body, so a rejected request never reaches the store.
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        AUTH_FAILURES.labels(reason="missing_or_malformed").inc()
        raise UnauthorizedError("Unauthorized - Missing or invalid token format")

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        AUTH_FAILURES.labels(reason="missing_or_malformed").inc()
        raise UnauthorizedError("Unauthorized - Missing or invalid token format")

    verifier = get_verifier(request)
    try:
        # Verifiers may do network I/O (certificate fetches)
        identity = await run_in_threadpool(verifier.verify, token)
    except InvalidCredentialError:
        AUTH_FAILURES.labels(reason="invalid_token").inc()
        raise UnauthorizedError("Unauthorized - Invalid token") from None
    except Exception as exc:
        log.exception("identity verification failed", extra={"error_type": type(exc).__name__})
        raise ServerError("Failed to verify credentials", details=str(exc)) from exc

    bind_user_context(identity.uid)
    return AuthContext(identity=identity, request_id=current_request_id())


def json_body(model: type[BaseModel]) -> Callable[..., Any]:
    """
    Request-body dependency that only runs once the caller is authenticated.

    FastAPI validates declared body parameters before resolving dependencies,
    so routes take their payload through this instead. An empty body or a
    JSON null yields the model's defaults.
    """

    async def _parse(request: Request, ctx: AuthContext = Depends(get_auth_context)):
        raw = await request.body()
        if not raw.strip():
            return model()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise BadRequestError("Invalid request body", details=str(exc)) from exc
        if data is None:
            return model()
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            raise BadRequestError("Invalid request body", details=validation_details(exc.errors())) from exc

    return _parse


__all__ = ["get_auth_context", "get_meeting_service", "get_verifier", "json_body"]
