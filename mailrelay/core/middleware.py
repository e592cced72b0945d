from __future__ import annotations

import time
import uuid

from fastapi import Request
from starlette.responses import Response

from mailrelay.core.events import log_event, request_id_ctx
from mailrelay.core.metrics import observe_http_request

REQUEST_ID_MAX_LENGTH = 64


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def build_request_id(request: Request, *, header_name: str) -> str:
    incoming = (request.headers.get(header_name) or "").strip()
    if incoming:
        return incoming[:REQUEST_ID_MAX_LENGTH]
    return new_request_id()


def current_request_id() -> str:
    return request_id_ctx.get() or new_request_id()


def apply_security_headers(response: Response) -> None:
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "same-origin")


def log_request_completion(
    *,
    request_id: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
) -> None:
    log_event(
        "http.request.completed",
        request_id=request_id,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )
    observe_http_request(
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
    )


def now_ts() -> float:
    return time.time()
