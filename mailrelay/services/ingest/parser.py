from __future__ import annotations

from email import policy
from email.errors import HeaderParseError
from email.message import Message
from email.parser import BytesParser
from email.utils import getaddresses

from mailrelay.services.ingest.types import DecodedMessage, HeaderMap, MailAddress
from mailrelay.services.relay.errors import MalformedMessage


def _unfold(value: str) -> str:
    return " ".join(value.split())


def _header_value(msg: Message, name: str, raw: str) -> str:
    try:
        return _unfold(str(msg.policy.header_fetch_parse(name, raw)))
    except (HeaderParseError, ValueError, TypeError, IndexError, AttributeError):
        # Structured header the policy cannot parse; keep the raw text.
        return _unfold(raw)


def _extract_headers(msg: Message) -> HeaderMap:
    return HeaderMap((name, _header_value(msg, name, raw)) for name, raw in msg.raw_items())


def _extract_address(headers: HeaderMap, header_name: str) -> MailAddress:
    value = headers.get(header_name, "").strip()
    if not value:
        return MailAddress()
    parsed = [(name, addr) for name, addr in getaddresses([value]) if addr]
    if not parsed:
        return MailAddress(text=value)
    name, addr = parsed[0]
    return MailAddress(
        display_name=(name or "").strip() or None,
        address=addr.strip(),
        text=value,
    )


def _is_attachment(part: Message) -> bool:
    disp = (part.get_content_disposition() or "").lower()
    return bool(disp in {"attachment", "inline"} and part.get_filename())


def _decode_text_part(part: Message) -> str:
    payload_bytes = part.get_payload(decode=True) or b""
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload_bytes.decode(charset, errors="replace")
    except LookupError:
        return payload_bytes.decode("utf-8", errors="replace")


def _walk_bodies(msg: Message) -> tuple[str | None, str | None, int]:
    text_parts: list[str] = []
    html_parts: list[str] = []
    attachments_count = 0

    parts = list(msg.walk()) if msg.is_multipart() else [msg]
    for part in parts:
        if part.is_multipart():
            continue
        if _is_attachment(part):
            attachments_count += 1
            continue

        content_type = (part.get_content_type() or "").lower()
        if content_type not in {"text/plain", "text/html"}:
            continue
        payload_text = _decode_text_part(part)
        if not payload_text.strip():
            continue
        if content_type == "text/plain":
            text_parts.append(payload_text)
        else:
            html_parts.append(payload_text)

    body_text = "\n\n".join(p.strip() for p in text_parts) or None
    body_html = "\n\n".join(p.strip() for p in html_parts) or None
    return body_text, body_html, attachments_count


def decode_message(raw: bytes) -> DecodedMessage:
    """Parse a raw RFC 5322 message.

    Missing From/To/Subject or an empty body are represented as empty fields.
    Raises MalformedMessage only when the input is empty or has no header section.
    """
    if not raw or not raw.strip():
        raise MalformedMessage("Empty email body")

    msg = BytesParser(policy=policy.default).parsebytes(raw)
    headers = _extract_headers(msg)
    if not len(headers):
        raise MalformedMessage("No header section found in message")

    body_text, body_html, attachments_count = _walk_bodies(msg)
    return DecodedMessage(
        from_=_extract_address(headers, "From"),
        to=_extract_address(headers, "To"),
        subject=headers.get("Subject", "").strip(),
        text_body=body_text,
        html_body=body_html,
        headers=headers,
        attachments_count=attachments_count,
        message_id=headers.get("Message-ID", "").strip() or None,
        size_bytes=len(raw),
    )
