# meeting_scheduler/routers/health.py
from __future__ import annotations

from fastapi import APIRouter, Request

from meeting_scheduler.logging_utils import get_logger

router = APIRouter(tags=["health"])
log = get_logger(__name__)


def _check_store(request: Request) -> dict:
    try:
        request.app.state.store.ping()
        return {"status": "ok"}
    except Exception as exc:  # noqa: BLE001
        log.warning("store health check failed", extra={"error": str(exc)})
        return {"status": "error", "detail": str(exc)}


@router.get("/healthz", include_in_schema=False)
def healthz(request: Request) -> dict:
    """
    Readiness endpoint.

    - store: one cheap round trip to the meeting store
    """
    checks = {"store": _check_store(request)}
    overall = "ok" if all(c["status"] != "error" for c in checks.values()) else "error"
    return {"status": overall, "checks": checks}
