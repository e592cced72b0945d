from __future__ import annotations

from dataclasses import dataclass

from mailrelay.services.relay.scoring import ValidationResult


@dataclass(frozen=True)
class Relayed:
    email_id: str
    message_id: str
    validation: ValidationResult | None = None
    transport_output: str = ""

    kind = "relayed"


@dataclass(frozen=True)
class Rejected:
    reason: str
    validation: ValidationResult

    kind = "rejected"


@dataclass(frozen=True)
class DispatchFailedOutcome:
    reason: str
    diagnostic: str
    validation: ValidationResult | None = None

    kind = "dispatch_failed"


RelayOutcome = Relayed | Rejected | DispatchFailedOutcome
