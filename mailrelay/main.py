from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from mailrelay.core.config import get_settings, load_relay_config
from mailrelay.core.events import (
    install_recent_activity_handler,
    install_stream_handler,
    log_event,
    request_id_ctx,
)
from mailrelay.core.middleware import (
    apply_security_headers,
    build_request_id,
    log_request_completion,
    now_ts,
)
from mailrelay.core.otel import setup_otel
from mailrelay.routers.health import router as health_router
from mailrelay.routers.webhook import build_webhook_router
from mailrelay.services.relay.transport import build_relay_transport


def create_app() -> FastAPI:
    app = FastAPI(title="Email Relay Webhook")

    settings = get_settings()
    install_stream_handler()
    relay_config = load_relay_config(settings.RELAY_CONFIG_PATH)
    app.state.relay_config = relay_config
    app.state.relay_transport = build_relay_transport(settings, relay_config)
    app.state.recent_activity = install_recent_activity_handler(settings.RECENT_ACTIVITY_SIZE)

    @app.middleware("http")
    async def add_security_headers_and_request_context(request, call_next):  # type: ignore[no-untyped-def]
        request_id = build_request_id(request, header_name=settings.REQUEST_ID_HEADER)
        token = request_id_ctx.set(request_id)
        start_ts = now_ts()
        method = request.method
        path = request.url.path
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[settings.REQUEST_ID_HEADER] = request_id
            apply_security_headers(response)
            return response
        finally:
            duration_ms = int((now_ts() - start_ts) * 1000)
            log_request_completion(
                request_id=request_id,
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=duration_ms,
            )
            request_id_ctx.reset(token)

    if settings.ENABLE_PROMETHEUS_METRICS:

        @app.get(settings.PROMETHEUS_METRICS_PATH, include_in_schema=False)
        def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(health_router)
    app.include_router(build_webhook_router(settings.WEBHOOK_PATH))

    otel = setup_otel(app=app, settings=settings)
    app.state.otel_tracing_enabled = otel.enabled
    app.state.otel_tracing_reason = otel.reason

    log_event(
        "app.started",
        webhook_path=settings.WEBHOOK_PATH,
        transport=app.state.relay_transport.name,
        domain=relay_config.effective_sending_domain,
    )
    return app


app = create_app()
