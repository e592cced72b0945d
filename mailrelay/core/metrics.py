from __future__ import annotations

from prometheus_client import Counter, Histogram

_HTTP_REQUESTS_TOTAL = Counter(
    "mailrelay_http_requests_total",
    "Total HTTP requests handled by the relay webhook.",
    labelnames=("method", "path", "status_code"),
)
_HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "mailrelay_http_request_duration_seconds",
    "HTTP request duration in seconds.",
    labelnames=("method", "path"),
)
_RELAY_OUTCOMES_TOTAL = Counter(
    "mailrelay_relay_outcomes_total",
    "Inbound messages by pipeline outcome.",
    labelnames=("outcome",),
)
_AUTHENTICITY_SCORE = Histogram(
    "mailrelay_authenticity_score",
    "Authenticity score assigned to decoded messages.",
    buckets=(0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100, 110, 120),
)
_TRANSPORT_DURATION_SECONDS = Histogram(
    "mailrelay_transport_duration_seconds",
    "Outbound transport invocation duration in seconds.",
    labelnames=("success",),
)


def observe_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: int,
) -> None:
    safe_path = path or "unknown"
    safe_method = method or "UNKNOWN"

    _HTTP_REQUESTS_TOTAL.labels(
        method=safe_method,
        path=safe_path,
        status_code=str(status_code),
    ).inc()
    _HTTP_REQUEST_DURATION_SECONDS.labels(method=safe_method, path=safe_path).observe(
        max(0.0, duration_ms / 1000.0)
    )


def observe_relay_outcome(outcome: str) -> None:
    _RELAY_OUTCOMES_TOTAL.labels(outcome=outcome).inc()


def observe_authenticity_score(score: int) -> None:
    _AUTHENTICITY_SCORE.observe(score)


def observe_transport_duration(*, seconds: float, success: bool) -> None:
    _TRANSPORT_DURATION_SECONDS.labels(success=str(success).lower()).observe(max(0.0, seconds))
