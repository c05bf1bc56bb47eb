"""Domain errors raised by the billing services.

Services never decide to terminate a request on their own. They raise one of
these and the route layer maps it onto an HTTP response.
"""
from __future__ import annotations

from typing import Any


class BillingError(Exception):
    """Expected business rejection with a machine-readable code."""

    code: str = "billing-error"
    status_code: int = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.extra}


class InvalidPlan(BillingError):
    code = "invalid-plan"
    status_code = 400


class OwnerOnly(BillingError):
    code = "owner-only"
    status_code = 403


class AlreadyActive(BillingError):
    code = "already-active"
    status_code = 409


class SubscriptionNotFound(BillingError):
    code = "subscription-not-found"
    status_code = 404


class NoPendingCheckout(BillingError):
    code = "no-pending-checkout"
    status_code = 404


class WebhookRejected(Exception):
    """Untrusted webhook input failed verification or parsing."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ConfigurationError(RuntimeError):
    """Required server-side configuration is missing."""
