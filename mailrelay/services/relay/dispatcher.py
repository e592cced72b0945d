from __future__ import annotations

import logging
import time
from pathlib import Path

from mailrelay.core.events import log_event
from mailrelay.core.metrics import observe_transport_duration
from mailrelay.core.otel import relay_span, set_relay_attributes
from mailrelay.services.relay.envelope import RelayEnvelope
from mailrelay.services.relay.errors import DispatchFailed
from mailrelay.services.relay.outcomes import DispatchFailedOutcome, Relayed
from mailrelay.services.relay.transport import RelayTransport, TransportResult

RECIPIENT_LIST_PLACEHOLDER = "# Add recipient email addresses here\n# example@domain.com\n"
DEFAULT_DIAGNOSTIC_MAX_CHARS = 500


def serialize_envelope(envelope: RelayEnvelope) -> str:
    lines = [f"From: {envelope.from_header}"]
    if envelope.reply_to_header:
        lines.append(f"Reply-To: {envelope.reply_to_header}")
    lines.extend(
        [
            f"Subject: {envelope.subject_header}",
            f"Message-ID: {envelope.message_id}",
            f"Date: {envelope.date_header}",
            "MIME-Version: 1.0",
            f"Content-Type: {envelope.content_type}",
        ]
    )
    if envelope.transfer_encoding:
        lines.append(f"Content-Transfer-Encoding: {envelope.transfer_encoding}")
    header_block = "".join(f"{line}\n" for line in lines)
    return f"{header_block}\n{envelope.body}"


def artifact_path_for(envelope: RelayEnvelope, temp_dir: str | Path) -> Path:
    return Path(temp_dir) / f"relay_{envelope.email_id}.eml"


def ensure_recipient_list(path: str | Path) -> bool:
    """Create a placeholder recipient list if none exists. Returns True when one was created."""
    list_path = Path(path)
    if list_path.exists():
        return False
    log_event("relay.recipient_list.missing", level=logging.WARNING, email_list=str(list_path))
    list_path.parent.mkdir(parents=True, exist_ok=True)
    list_path.write_text(RECIPIENT_LIST_PLACEHOLDER, encoding="utf-8")
    return True


def truncate_diagnostic(text: str, max_chars: int = DEFAULT_DIAGNOSTIC_MAX_CHARS) -> str:
    text = text.strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def _cleanup_artifact(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        log_event(
            "relay.artifact.cleanup_failed",
            level=logging.WARNING,
            artifact=str(path),
            error=str(e),
        )


async def _traced_send(
    transport: RelayTransport,
    *,
    artifact_path: Path,
    mode: str,
    email_id: str,
) -> TransportResult:
    with relay_span(
        "relay.transport.send",
        transport=transport.name,
        mode=mode,
        email_id=email_id,
    ) as span:
        try:
            result = await transport.send(artifact_path=artifact_path, mode=mode)
        except DispatchFailed as e:
            set_relay_attributes(span, success=False, reason=e.reason)
            raise
        set_relay_attributes(span, success=result.success, exit_code=result.exit_code)
        return result


async def dispatch(
    envelope: RelayEnvelope,
    *,
    transport: RelayTransport,
    temp_dir: str | Path,
    recipient_list_path: str | Path,
    mode: str = "relay",
    diagnostic_max_chars: int = DEFAULT_DIAGNOSTIC_MAX_CHARS,
) -> Relayed | DispatchFailedOutcome:
    artifact_path = artifact_path_for(envelope, temp_dir)
    artifact_path.parent.mkdir(parents=True, exist_ok=True)

    try:
        artifact_path.write_text(serialize_envelope(envelope), encoding="utf-8")
        log_event(
            "relay.artifact.created",
            artifact=str(artifact_path),
            email_id=envelope.email_id,
        )
        ensure_recipient_list(recipient_list_path)

        started = time.monotonic()
        try:
            result = await _traced_send(
                transport,
                artifact_path=artifact_path,
                mode=mode,
                email_id=envelope.email_id,
            )
        except DispatchFailed as e:
            observe_transport_duration(seconds=time.monotonic() - started, success=False)
            diagnostic = truncate_diagnostic(e.diagnostic or e.reason, diagnostic_max_chars)
            log_event(
                "relay.dispatch.failed",
                level=logging.ERROR,
                transport=transport.name,
                reason=e.reason,
                diagnostic=diagnostic,
            )
            return DispatchFailedOutcome(reason=e.reason, diagnostic=diagnostic)

        observe_transport_duration(seconds=time.monotonic() - started, success=result.success)
        if not result.success:
            diagnostic = truncate_diagnostic(result.diagnostic, diagnostic_max_chars)
            log_event(
                "relay.dispatch.failed",
                level=logging.ERROR,
                transport=transport.name,
                exit_code=result.exit_code,
                diagnostic=diagnostic,
            )
            return DispatchFailedOutcome(reason="Relay command failed", diagnostic=diagnostic)

        output = truncate_diagnostic(result.output, diagnostic_max_chars)
        log_event(
            "relay.dispatch.succeeded",
            transport=transport.name,
            email_id=envelope.email_id,
            message_id=envelope.message_id,
            output=output,
        )
        return Relayed(
            email_id=envelope.email_id,
            message_id=envelope.message_id,
            transport_output=output,
        )
    finally:
        _cleanup_artifact(artifact_path)
