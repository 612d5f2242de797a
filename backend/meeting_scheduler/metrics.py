# meeting_scheduler/metrics.py
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

HTTP_REQUESTS = Counter("http_requests_total", "HTTP requests", ["path", "method", "status"])

HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    ["path", "method"],
)

MEETING_OPERATIONS = Counter(
    "meeting_operations_total",
    "Meeting operations by outcome (ok or the error status code)",
    ["operation", "outcome"],
)

AUTH_FAILURES = Counter(
    "auth_failures_total",
    "Requests rejected by the authentication gate",
    ["reason"],
)


@contextmanager
def track_http_request(
    method: str,
    path_getter: Callable[[], str],
    status_getter: Callable[[], int],
) -> Iterator[Any]:
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        path = path_getter()
        HTTP_REQUESTS.labels(path=path, method=method, status=str(status_getter())).inc()
        HTTP_LATENCY.labels(path=path, method=method).observe(duration)


def metrics_endpoint() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
