"""Optional OpenTelemetry tracing.

`setup_otel` instruments the FastAPI app and keeps a relay tracer around so the
pipeline and the outbound transport call get their own spans. With tracing off
(or the otel extra not installed) `relay_span` yields None.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from threading import Lock
from typing import Any

from fastapi import FastAPI

from mailrelay.core.config import Settings
from mailrelay.core.events import log_event

ATTRIBUTE_PREFIX = "mailrelay."


@dataclass(frozen=True)
class OTelSetupResult:
    enabled: bool
    reason: str
    shutdown: Callable[[], None] | None = None


_PROVIDER: Any | None = None
_RELAY_TRACER: Any | None = None
_PROVIDER_LOCK = Lock()


def setup_otel(*, app: FastAPI, settings: Settings) -> OTelSetupResult:
    use_relay_tracer(None)
    if not settings.ENABLE_OTEL_TRACING:
        return OTelSetupResult(enabled=False, reason="disabled")

    endpoint = settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT.strip()
    if not endpoint:
        log_event("otel.setup.skipped", level=logging.WARNING, reason="missing_endpoint")
        return OTelSetupResult(enabled=False, reason="missing_endpoint")

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    except ImportError as e:
        log_event("otel.setup.skipped", level=logging.WARNING, reason="dependency_missing", error=str(e))
        return OTelSetupResult(enabled=False, reason="dependency_missing")

    global _PROVIDER, _RELAY_TRACER
    with _PROVIDER_LOCK:
        if _PROVIDER is None:
            try:
                _PROVIDER = _build_provider(settings, endpoint)
            except ImportError as e:
                log_event(
                    "otel.setup.skipped",
                    level=logging.WARNING,
                    reason="dependency_missing",
                    error=str(e),
                )
                return OTelSetupResult(enabled=False, reason="dependency_missing")
        provider = _PROVIDER
        _RELAY_TRACER = provider.get_tracer("mailrelay.relay", settings.VERSION)

    FastAPIInstrumentor.instrument_app(
        app,
        tracer_provider=provider,
        excluded_urls=settings.OTEL_EXCLUDED_URLS,
    )
    log_event(
        "otel.setup.enabled",
        service=settings.OTEL_SERVICE_NAME,
        endpoint=endpoint,
        transport=settings.RELAY_TRANSPORT,
    )

    def _shutdown() -> None:
        with suppress(Exception):
            FastAPIInstrumentor.uninstrument_app(app)
        with suppress(Exception):
            provider.force_flush()

    return OTelSetupResult(enabled=True, reason="enabled", shutdown=_shutdown)


def _build_provider(settings: Settings, endpoint: str) -> Any:
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor
    from opentelemetry.sdk.trace.sampling import TraceIdRatioBased

    resource = Resource.create(
        {
            SERVICE_NAME: settings.OTEL_SERVICE_NAME,
            SERVICE_VERSION: settings.VERSION,
            "deployment.environment": settings.APP_ENV,
            f"{ATTRIBUTE_PREFIX}transport": settings.RELAY_TRANSPORT,
            f"{ATTRIBUTE_PREFIX}webhook_path": settings.WEBHOOK_PATH,
        }
    )
    provider = TracerProvider(resource=resource, sampler=TraceIdRatioBased(settings.OTEL_TRACE_SAMPLE_RATIO))
    exporter_kwargs: dict[str, Any] = {"endpoint": endpoint}
    otlp_headers = parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS)
    if otlp_headers:
        exporter_kwargs["headers"] = otlp_headers
    exporter = OTLPSpanExporter(**exporter_kwargs)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider


def use_relay_tracer(tracer: Any | None) -> None:
    """Swap the tracer behind `relay_span`; None turns relay spans off."""
    global _RELAY_TRACER
    _RELAY_TRACER = tracer


def set_relay_attributes(span: Any | None, **attributes: Any) -> None:
    if span is None:
        return
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(f"{ATTRIBUTE_PREFIX}{key}", value)


@contextmanager
def relay_span(name: str, **attributes: Any) -> Iterator[Any | None]:
    tracer = _RELAY_TRACER
    if tracer is None:
        yield None
        return
    with tracer.start_as_current_span(name) as span:
        set_relay_attributes(span, **attributes)
        yield span


def parse_otlp_headers(raw_headers: str) -> dict[str, str]:
    """Parse OTEL_EXPORTER_OTLP_HEADERS (`k=v,k2=v2`), skipping malformed tokens."""
    out: dict[str, str] = {}
    for token in raw_headers.split(","):
        piece = token.strip()
        if not piece:
            continue
        key, sep, value = piece.partition("=")
        if not sep or not key.strip() or not value.strip():
            log_event("otel.header.ignored", level=logging.WARNING, token=piece)
            continue
        out[key.strip()] = value.strip()
    return out
