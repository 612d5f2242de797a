from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from meeting_scheduler.core.errors import install_error_handlers
from meeting_scheduler.core.settings import Settings, get_settings
from meeting_scheduler.logging_utils import bind_request_context, configure_logging, get_logger
from meeting_scheduler.metrics import metrics_endpoint, track_http_request
from meeting_scheduler.routers import health, meetings
from meeting_scheduler.services.identity import IdentityVerifier, JwtIdentityVerifier
from meeting_scheduler.services.meeting_store import MeetingStore, SqlMeetingStore
from meeting_scheduler.services.meetings import Clock, MeetingService, utc_now

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Collaborators (built once per process)
# ---------------------------------------------------------------------------


def build_verifier(settings: Settings) -> IdentityVerifier:
    if settings.AUTH_BACKEND == "jwt":
        return JwtIdentityVerifier(
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
            audience=settings.JWT_AUDIENCE,
        )
    if settings.AUTH_BACKEND == "firebase":
        from meeting_scheduler.services.firebase import FirebaseIdentityVerifier, init_firebase_app

        return FirebaseIdentityVerifier(init_firebase_app(settings), check_revoked=settings.CHECK_REVOKED)
    raise ValueError(f"unsupported AUTH_BACKEND: {settings.AUTH_BACKEND!r}")


def build_store(settings: Settings) -> MeetingStore:
    if settings.STORE_BACKEND == "sql":
        # Alembic owns the schema outside dev
        return SqlMeetingStore.from_url(settings.DATABASE_URL, create_schema=settings.APP_ENV == "dev")
    if settings.STORE_BACKEND == "firestore":
        from meeting_scheduler.services.firebase import FirestoreMeetingStore, init_firebase_app

        return FirestoreMeetingStore.from_app(init_firebase_app(settings), settings.MEETINGS_COLLECTION)
    raise ValueError(f"unsupported STORE_BACKEND: {settings.STORE_BACKEND!r}")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(
    settings: Optional[Settings] = None,
    *,
    verifier: Optional[IdentityVerifier] = None,
    store: Optional[MeetingStore] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    """
    Build the API.

    Collaborators that are not injected are constructed from settings when
    the application starts, then shared by every request through app.state.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.verifier = verifier or build_verifier(settings)
        app.state.store = store or build_store(settings)
        app.state.meetings = MeetingService(app.state.store, clock=clock)
        logger.info(
            "meeting scheduler started",
            extra={"auth_backend": settings.AUTH_BACKEND, "store_backend": settings.STORE_BACKEND},
        )
        yield

    app = FastAPI(title="Meeting Scheduler API", lifespan=lifespan)

    install_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Observability middleware (request ID + HTTP metrics)
    # -----------------------------------------------------------------------

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        bind_request_context(request_id)

        status_holder: dict[str, int] = {"status": 500}

        def _path() -> str:
            # Label by route template to keep the metric cardinality bounded
            return getattr(request.scope.get("route"), "path", "unmatched")

        def _status() -> int:
            return status_holder["status"]

        with track_http_request(request.method, _path, _status):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "unhandled error in request",
                    extra={"path": request.url.path, "method": request.method},
                )
                raise
            status_holder["status"] = response.status_code

        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    def root() -> str:
        return "Meeting Scheduler API is running"

    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

    app.include_router(health.router)
    app.include_router(meetings.router)
    return app


# Configure structured logging for the API once at import
configure_logging("api", get_settings().LOG_LEVEL)

app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn on PORT."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT, log_config=None)
