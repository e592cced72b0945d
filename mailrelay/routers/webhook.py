from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from mailrelay.core.config import RelayConfig, Settings, get_settings
from mailrelay.core.deps import get_relay_config, get_relay_transport
from mailrelay.core.events import log_event
from mailrelay.core.middleware import current_request_id, now_ts
from mailrelay.schemas.webhook import ValidationOut, WebhookResponse
from mailrelay.services.relay.errors import InternalError, MalformedMessage
from mailrelay.services.relay.outcomes import DispatchFailedOutcome, Rejected, Relayed, RelayOutcome
from mailrelay.services.relay.pipeline import PipelineOptions, run_relay_pipeline
from mailrelay.services.relay.scoring import ValidationResult
from mailrelay.services.relay.transport import RelayTransport

HTTP_424_FAILED_DEPENDENCY = 424


def _validation_out(validation: ValidationResult | None) -> ValidationOut | None:
    if validation is None:
        return None
    return ValidationOut(**validation.to_dict())


def _respond(status_code: int, body: WebhookResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.to_json_dict())


def _elapsed_ms(start_ts: float) -> int:
    return max(0, int((now_ts() - start_ts) * 1000))


def outcome_response(outcome: RelayOutcome, *, request_id: str, processing_time: int) -> JSONResponse:
    if isinstance(outcome, Relayed):
        return _respond(
            status.HTTP_200_OK,
            WebhookResponse(
                success=True,
                message="Email processed and relayed successfully",
                request_id=request_id,
                email_id=outcome.email_id,
                message_id=outcome.message_id,
                processing_time=processing_time,
                validation=_validation_out(outcome.validation),
            ),
        )
    if isinstance(outcome, Rejected):
        return _respond(
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            WebhookResponse(
                success=False,
                message="Email refused by authenticity check",
                reason=outcome.reason,
                request_id=request_id,
                processing_time=processing_time,
                validation=_validation_out(outcome.validation),
            ),
        )
    if isinstance(outcome, DispatchFailedOutcome):
        return _respond(
            HTTP_424_FAILED_DEPENDENCY,
            WebhookResponse(
                success=False,
                message="Email processing failed",
                reason=outcome.reason,
                error=outcome.diagnostic,
                request_id=request_id,
                processing_time=processing_time,
                validation=_validation_out(outcome.validation),
            ),
        )
    raise TypeError(f"unknown relay outcome: {outcome!r}")


async def receive_email(
    request: Request,
    relay_config: RelayConfig = Depends(get_relay_config),
    transport: RelayTransport = Depends(get_relay_transport),
) -> JSONResponse:
    start_ts = now_ts()
    settings: Settings = get_settings()
    request_id = current_request_id()

    log_event(
        "webhook.request.received",
        content_type=request.headers.get("content-type"),
        content_length=request.headers.get("content-length"),
        user_agent=request.headers.get("user-agent"),
        edge_from=request.headers.get("x-cloudflare-email-from"),
        edge_to=request.headers.get("x-cloudflare-email-to"),
    )

    declared_length = request.headers.get("content-length") or ""
    if declared_length.isdigit() and int(declared_length) > settings.WEBHOOK_MAX_BODY_BYTES:
        return _too_large(request_id=request_id, start_ts=start_ts)
    raw = await request.body()
    if len(raw) > settings.WEBHOOK_MAX_BODY_BYTES:
        return _too_large(request_id=request_id, start_ts=start_ts)

    try:
        outcome = await run_relay_pipeline(
            raw,
            relay_config=relay_config,
            transport=transport,
            options=PipelineOptions.from_settings(settings),
        )
    except MalformedMessage as e:
        log_event("webhook.request.malformed", level=logging.WARNING, error=str(e))
        return _respond(
            status.HTTP_400_BAD_REQUEST,
            WebhookResponse(
                success=False,
                error="Malformed message",
                message=str(e),
                request_id=request_id,
                processing_time=_elapsed_ms(start_ts),
            ),
        )
    except InternalError as e:
        log_event(
            "webhook.request.error",
            level=logging.ERROR,
            exc_info=True,
            error=str(e.__cause__ or e),
            processing_time_ms=_elapsed_ms(start_ts),
        )
        return _respond(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            WebhookResponse(
                success=False,
                error="Internal server error",
                request_id=request_id,
                processing_time=_elapsed_ms(start_ts),
            ),
        )

    processing_time = _elapsed_ms(start_ts)
    log_event(
        "webhook.request.completed",
        level=logging.INFO if isinstance(outcome, Relayed) else logging.WARNING,
        outcome=outcome.kind,
        processing_time_ms=processing_time,
    )
    return outcome_response(outcome, request_id=request_id, processing_time=processing_time)


def _too_large(*, request_id: str, start_ts: float) -> JSONResponse:
    log_event("webhook.request.too_large", level=logging.WARNING)
    return _respond(
        status.HTTP_413_CONTENT_TOO_LARGE,
        WebhookResponse(
            success=False,
            error="Email body too large",
            request_id=request_id,
            processing_time=_elapsed_ms(start_ts),
        ),
    )


def build_webhook_router(path: str) -> APIRouter:
    router = APIRouter(tags=["webhook"])
    router.add_api_route(path, receive_email, methods=["POST"], response_model=WebhookResponse)
    return router
