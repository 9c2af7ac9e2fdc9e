from typing import Optional


class TunnelError(Exception):
    """Base class for requests the tunnel refuses or fails to relay.

    The message is returned to the caller verbatim as a plain-text body, so
    it must never carry upstream infrastructure details. ``reason`` is a short
    label used for metrics and tracing.
    """

    status_code = 400
    reason = "rejected"

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason


class MethodNotAllowed(TunnelError):
    status_code = 405
    reason = "method"

    def __init__(self):
        super().__init__("Method not allowed")


class EnvelopeRejected(TunnelError):
    """The envelope or its destination failed validation."""

    reason = "envelope"


class RelayFailure(TunnelError):
    """Server-side failure while relaying; the caller only sees a generic message."""

    status_code = 500
    reason = "relay"
