from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mailrelay.services.ingest.types import DecodedMessage

DEFAULT_SCORE_THRESHOLD = 50
MAX_SCORE = 120

SPF_WEIGHT = 30
DKIM_WEIGHT = 30
DMARC_WEIGHT = 40
SENDER_WEIGHT = 10
SUBJECT_WEIGHT = 10


@dataclass(frozen=True)
class ValidationResult:
    spf_pass: bool
    dkim_present: bool
    dmarc_pass: bool
    score: int
    reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "spf": self.spf_pass,
            "dkim": self.dkim_present,
            "dmarc": self.dmarc_pass,
            "score": self.score,
            "reasons": list(self.reasons),
        }


def score_message(msg: DecodedMessage) -> ValidationResult:
    """Additive authenticity score for a decoded message.

    A signal whose header is absent contributes nothing and emits no reason; a
    present-but-failing SPF or DMARC header emits a FAIL reason.
    """
    score = 0
    reasons: list[str] = []
    headers = msg.headers

    spf_pass = False
    received_spf = headers.get("Received-SPF")
    if received_spf:
        spf_pass = "pass" in received_spf.lower()
        if spf_pass:
            score += SPF_WEIGHT
        reasons.append(f"SPF: {'PASS' if spf_pass else 'FAIL'}")

    dkim_present = "DKIM-Signature" in headers
    if dkim_present:
        score += DKIM_WEIGHT
        reasons.append("DKIM: Signature present")

    dmarc_pass = False
    auth_results = headers.get("Authentication-Results")
    if auth_results:
        dmarc_pass = "dmarc=pass" in auth_results.lower()
        if dmarc_pass:
            score += DMARC_WEIGHT
        reasons.append(f"DMARC: {'PASS' if dmarc_pass else 'FAIL'}")

    if not msg.from_.is_empty:
        score += SENDER_WEIGHT
        reasons.append("Valid sender address")

    if msg.subject:
        score += SUBJECT_WEIGHT
        reasons.append("Valid subject line")

    return ValidationResult(
        spf_pass=spf_pass,
        dkim_present=dkim_present,
        dmarc_pass=dmarc_pass,
        score=score,
        reasons=tuple(reasons),
    )


def passes_gate(result: ValidationResult, threshold: int = DEFAULT_SCORE_THRESHOLD) -> bool:
    return result.score >= threshold
