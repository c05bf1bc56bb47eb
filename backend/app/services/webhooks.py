"""Subscription payment webhook processing.

Every step is a hard gate. Nothing is written until the signature, payload and
order code have all been accepted, and the response is only produced after
the activation has been committed.
"""
from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConfigurationError, WebhookRejected
from app.core.logging import get_logger
from app.db.models.account import Account
from app.services import notifications
from app.services.activation import ActivationResult, activate_pending
from app.services.payos import parse_order_code, verify_body_signature

logger = get_logger(__name__)


class WebhookStatus(str, enum.Enum):
    ACTIVATED = "activated"
    NOT_FOUND = "not_found"
    NOT_OURS = "not_ours"
    IGNORED = "ignored"


@dataclass
class WebhookOutcome:
    status: WebhookStatus
    order_code: Optional[str] = None
    activation: Optional[ActivationResult] = None

    def body(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status.value}
        if self.order_code:
            payload["order_code"] = self.order_code
        if self.activation is not None:
            sub = self.activation.subscription
            payload["expires_at"] = sub.expires_at.isoformat() if sub.expires_at else None
        return payload


def _parse_amount(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _notify(db: Session, result: ActivationResult) -> None:
    sub = result.subscription
    try:
        account = db.get(Account, sub.owner_id)
        display_name = account.display_name if account else "User"
        notifications.notify_activation(
            db,
            owner_id=sub.owner_id,
            display_name=display_name,
            plan_duration=sub.plan_duration,
            expires_at=sub.expires_at,
        )
    except Exception:
        logger.warning("Activation notification failed for owner %s", sub.owner_id, exc_info=True)


def process_subscription_webhook(
    db: Session,
    raw_body: bytes,
    signature: str | None,
    now: datetime | None = None,
) -> WebhookOutcome:
    secret = settings.PAYOS_CHECKSUM_KEY
    if not secret:
        raise ConfigurationError("PAYOS_CHECKSUM_KEY is not configured")

    if not signature:
        logger.warning("Subscription webhook without signature header")
        raise WebhookRejected("Missing signature")
    if not verify_body_signature(raw_body, signature, secret):
        logger.warning("Subscription webhook signature mismatch")
        raise WebhookRejected("Invalid signature")

    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        logger.warning("Subscription webhook body is not valid JSON")
        raise WebhookRejected("Invalid payload") from None
    if not isinstance(event, dict):
        raise WebhookRejected("Invalid payload")

    data = event.get("data")
    if not isinstance(data, dict) or not data:
        logger.warning("Subscription webhook without data block")
        raise WebhookRejected("Invalid payload")

    code = event.get("code")
    if code is not None and str(code) != "00":
        logger.warning("PayOS reported non-success code=%s desc=%s", code, event.get("desc"))
        return WebhookOutcome(WebhookStatus.IGNORED)

    raw_order_code = data.get("orderCode")
    order = parse_order_code(raw_order_code)
    if order is None:
        logger.warning("Webhook order code %r is not a subscription order", raw_order_code)
        return WebhookOutcome(WebhookStatus.NOT_OURS, order_code=str(raw_order_code) if raw_order_code else None)

    result = activate_pending(db, order, amount=_parse_amount(data.get("amount")), now=now)
    if result is None:
        logger.warning("No pending subscription for order %s (already consumed?)", order)
        return WebhookOutcome(WebhookStatus.NOT_FOUND, order_code=str(order))

    _notify(db, result)
    return WebhookOutcome(WebhookStatus.ACTIVATED, order_code=str(order), activation=result)
