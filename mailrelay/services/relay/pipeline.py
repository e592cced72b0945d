from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from mailrelay.core.config import RelayConfig, Settings
from mailrelay.core.events import log_event, request_id_ctx
from mailrelay.core.metrics import observe_authenticity_score, observe_relay_outcome
from mailrelay.core.otel import relay_span, set_relay_attributes
from mailrelay.services.ingest.parser import decode_message
from mailrelay.services.relay.dispatcher import DEFAULT_DIAGNOSTIC_MAX_CHARS, dispatch
from mailrelay.services.relay.envelope import build_envelope
from mailrelay.services.relay.errors import InternalError, MalformedMessage
from mailrelay.services.relay.outcomes import Rejected, RelayOutcome
from mailrelay.services.relay.scoring import DEFAULT_SCORE_THRESHOLD, passes_gate, score_message
from mailrelay.services.relay.transport import RelayTransport


@dataclass(frozen=True)
class PipelineOptions:
    score_threshold: int = DEFAULT_SCORE_THRESHOLD
    temp_dir: str = "var/relay_temp"
    transport_mode: str = "relay"
    diagnostic_max_chars: int = DEFAULT_DIAGNOSTIC_MAX_CHARS

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineOptions:
        return cls(
            score_threshold=settings.RELAY_SCORE_THRESHOLD,
            temp_dir=settings.RELAY_TEMP_DIR,
            transport_mode=settings.RELAY_TRANSPORT_MODE,
            diagnostic_max_chars=settings.RELAY_DIAGNOSTIC_MAX_CHARS,
        )


async def run_relay_pipeline(
    raw: bytes,
    *,
    relay_config: RelayConfig,
    transport: RelayTransport,
    options: PipelineOptions,
) -> RelayOutcome:
    """Decode, score, gate, build and dispatch one inbound message.

    Raises MalformedMessage for unparseable input and InternalError for anything
    unexpected; every other result is returned as a RelayOutcome.
    """
    with relay_span("relay.pipeline", request_id=request_id_ctx.get(), body_size=len(raw)) as span:
        try:
            outcome = await _run(raw, relay_config=relay_config, transport=transport, options=options)
        except MalformedMessage:
            observe_relay_outcome("malformed")
            set_relay_attributes(span, outcome="malformed")
            raise
        except Exception as e:
            observe_relay_outcome("internal_error")
            set_relay_attributes(span, outcome="internal_error")
            raise InternalError(f"relay pipeline failed: {e}") from e

        observe_relay_outcome(outcome.kind)
        set_relay_attributes(
            span,
            outcome=outcome.kind,
            score=outcome.validation.score if outcome.validation else None,
        )
        return outcome


async def _run(
    raw: bytes,
    *,
    relay_config: RelayConfig,
    transport: RelayTransport,
    options: PipelineOptions,
) -> RelayOutcome:
    log_event("email.parse.started", body_size=len(raw))
    msg = decode_message(raw)
    log_event(
        "email.parse.completed",
        sender=msg.from_.text or "unknown",
        to=msg.to.text or "unknown",
        subject=msg.subject,
        original_message_id=msg.message_id,
        has_html=msg.html_body is not None,
        has_text=msg.text_body is not None,
        attachments=msg.attachments_count,
    )

    validation = score_message(msg)
    observe_authenticity_score(validation.score)
    log_event("email.validation.completed", **validation.to_dict())

    if not passes_gate(validation, options.score_threshold):
        log_event(
            "email.validation.rejected",
            level=logging.WARNING,
            score=validation.score,
            threshold=options.score_threshold,
            reasons=list(validation.reasons),
        )
        return Rejected(reason="Failed validation", validation=validation)

    envelope = build_envelope(msg, relay_config)
    log_event(
        "relay.envelope.built",
        email_id=envelope.email_id,
        message_id=envelope.message_id,
        original_message_id=msg.message_id,
        content_type=envelope.content_type,
    )

    outcome = await dispatch(
        envelope,
        transport=transport,
        temp_dir=options.temp_dir,
        recipient_list_path=relay_config.recipient_list_path,
        mode=options.transport_mode,
        diagnostic_max_chars=options.diagnostic_max_chars,
    )
    return dataclasses.replace(outcome, validation=validation)
