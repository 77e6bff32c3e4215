"""
Domain error taxonomy.

Expected rejections (bad input, guard failures, ownership mismatches) are raised
as one of these and translated to 4xx by the handler registered in main.py.
Anything else is an unexpected fault and surfaces as a 500.
"""

from typing import Optional


class DomainError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Malformed input, raised before any mutation"""

    status_code = 400


class OutOfServiceArea(DomainError):
    status_code = 400

    def __init__(self, latitude: float, longitude: float):
        super().__init__(f"Location ({latitude}, {longitude}) is outside the service area")
        self.latitude = latitude
        self.longitude = longitude


class InvalidTransition(DomainError):
    """A state-machine guard rejected the requested status change"""

    status_code = 409

    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        message = f"Cannot move order from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.requested = requested
        self.reason = reason


class NotFound(DomainError):
    status_code = 404


class Forbidden(DomainError):
    status_code = 403


class Conflict(DomainError):
    status_code = 409


class GatewayUnavailable(DomainError):
    """Transient failure talking to the payment gateway"""

    status_code = 503


class WebhookAuthenticityFailure(Exception):
    """Webhook failed signature or status cross-check. Never surfaced to the caller."""

    pass
