from __future__ import annotations


class RelayError(RuntimeError):
    pass


class MalformedMessage(RelayError):
    """Request body cannot be parsed as an RFC 5322 message. No relay is attempted."""


class DispatchFailed(RelayError):
    def __init__(self, reason: str, diagnostic: str = "") -> None:
        super().__init__(reason)
        self.reason = reason
        self.diagnostic = diagnostic


class InternalError(RelayError):
    """Unexpected failure inside the pipeline; callers only see a generic message."""
