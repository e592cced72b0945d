"""On-behalf-of envelope construction.

The relayed message is sent From an address on the owned sending domain so it
passes the operator's own SPF/DKIM/DMARC, while the original sender's name stays
in the display phrase and the original address moves to Reply-To.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import format_datetime, formataddr
from uuid import uuid4

from mailrelay.core.config import RelayConfig
from mailrelay.services.ingest.types import DecodedMessage

NO_CONTENT_BODY = "No content available"
NO_SUBJECT = "No Subject"
UNKNOWN_SENDER = "Unknown Sender"
HTML_CONTENT_TYPE = "text/html; charset=UTF-8"
TEXT_CONTENT_TYPE = "text/plain; charset=UTF-8"


@dataclass(frozen=True)
class RelayEnvelope:
    email_id: str
    message_id: str
    from_header: str
    reply_to_header: str | None
    subject_header: str
    date_header: str
    content_type: str
    body: str
    transfer_encoding: str | None = None


def _single_line(value: str) -> str:
    return " ".join(value.replace("\r", " ").replace("\n", " ").split())


def resolve_display_name(msg: DecodedMessage) -> str:
    name = _single_line(msg.from_.display_name or "")
    # An address-shaped display name would put a foreign domain back into From.
    if "@" in name:
        name = name.split("@", 1)[0].strip().strip("\"'<")
    if name:
        return name
    return msg.from_.local_part or UNKNOWN_SENDER


def format_relay_from(display_name: str, sending_domain: str) -> str:
    phrase = f"{display_name} via {sending_domain}"
    address = f"noreply@{sending_domain}"
    if not phrase.isascii():
        return formataddr((phrase, address))
    escaped = phrase.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}" <{address}>'


def format_reply_to(msg: DecodedMessage) -> str | None:
    text = _single_line(msg.from_.text)
    address = msg.from_.address or ""
    if not text or text.isascii() or not address or not address.isascii():
        return text or None
    # Decoded non-ASCII names go back out as RFC 2047 words, same as From.
    return formataddr((_single_line(msg.from_.display_name or ""), address))


def _select_body(msg: DecodedMessage) -> tuple[str, str, str | None]:
    if msg.html_body:
        return HTML_CONTENT_TYPE, msg.html_body, "8bit"
    if msg.text_body:
        return TEXT_CONTENT_TYPE, msg.text_body, "8bit"
    return TEXT_CONTENT_TYPE, NO_CONTENT_BODY, None


def build_envelope(
    msg: DecodedMessage,
    config: RelayConfig,
    *,
    now: datetime | None = None,
    email_id: str | None = None,
) -> RelayEnvelope:
    sending_domain = config.effective_sending_domain
    relay_id = email_id or str(uuid4())
    sent_at = now or datetime.now(UTC)
    content_type, body, transfer_encoding = _select_body(msg)

    return RelayEnvelope(
        email_id=relay_id,
        message_id=f"<{relay_id}@{sending_domain}>",
        from_header=format_relay_from(resolve_display_name(msg), sending_domain),
        reply_to_header=format_reply_to(msg),
        subject_header=_single_line(msg.subject) or NO_SUBJECT,
        date_header=format_datetime(sent_at),
        content_type=content_type,
        body=body,
        transfer_encoding=transfer_encoding,
    )
