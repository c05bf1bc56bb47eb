"""PayOS payment-link client, order codes and webhook signatures."""
from __future__ import annotations

import hashlib
import hmac
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import ConfigurationError
from app.core.logging import get_logger

logger = get_logger(__name__)

SIGNATURE_HEADER = "x-payos-signature"
ORDER_CODE_PREFIX = "SUB"
_ORDER_CODE_RE = re.compile(
    r"^SUB_(?P<owner>[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
    r"_(?P<duration>\d+)_(?P<ts>\d+)$"
)


class PayOSError(RuntimeError):
    """Raised when PayOS returns an error response."""

    def __init__(self, message: str, *, status_code: int | None = None, payload: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}


@dataclass(frozen=True)
class OrderCode:
    owner_id: uuid.UUID
    plan_duration: int
    timestamp_ms: int

    def __str__(self) -> str:
        return f"{ORDER_CODE_PREFIX}_{self.owner_id}_{self.plan_duration}_{self.timestamp_ms}"


def build_order_code(owner_id: uuid.UUID, plan_duration: int, now: datetime | None = None) -> str:
    ts = int((now or utcnow()).timestamp() * 1000)
    return str(OrderCode(owner_id=owner_id, plan_duration=plan_duration, timestamp_ms=ts))


def parse_order_code(value: Any) -> OrderCode | None:
    """Parse ``SUB_{ownerId}_{months}_{epochMillis}``; anything else is not ours."""
    if value is None:
        return None
    match = _ORDER_CODE_RE.match(str(value).strip())
    if not match:
        return None
    return OrderCode(
        owner_id=uuid.UUID(match.group("owner")),
        plan_duration=int(match.group("duration")),
        timestamp_ms=int(match.group("ts")),
    )


def compute_body_signature(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_body_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    if not signature:
        return False
    expected = compute_body_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


def _payment_request_signature(body: Dict[str, Any], secret: str) -> str:
    # PayOS signs the sorted key=value pairs of these five fields
    fields = ("amount", "cancelUrl", "description", "orderCode", "returnUrl")
    kv = "&".join(f"{key}={body[key]}" for key in sorted(fields))
    return hmac.new(secret.encode("utf-8"), kv.encode("utf-8"), hashlib.sha256).hexdigest()


def vietqr_image_url(amount: int, description: str) -> str | None:
    if not (settings.VIETQR_ACQ_ID and settings.VIETQR_ACCOUNT_NO):
        return None
    return (
        f"https://img.vietqr.io/image/{settings.VIETQR_ACQ_ID}-{settings.VIETQR_ACCOUNT_NO}-compact2.png"
        f"?amount={amount}&addInfo={quote(description)}"
        f"&accountName={quote(settings.VIETQR_ACCOUNT_NAME or '')}"
    )


@dataclass(frozen=True)
class PaymentLink:
    order_code: str
    amount: int
    checkout_url: str
    qr_data_url: str | None


@dataclass
class PayOSClient:
    """HTTP client wrapper for the PayOS merchant API."""

    client_id: str
    api_key: str
    checksum_key: str
    base_url: str = "https://api-merchant.payos.vn"
    timeout: float = 30.0

    def create_payment_link(
        self,
        *,
        order_code: str,
        amount: int,
        description: str,
        return_url: str,
        cancel_url: str,
    ) -> PaymentLink:
        body: Dict[str, Any] = {
            "orderCode": order_code,
            "amount": amount,
            "description": description[:25],
            "returnUrl": return_url,
            "cancelUrl": cancel_url,
        }
        body["signature"] = _payment_request_signature(body, self.checksum_key)

        headers = {
            "x-client-id": self.client_id,
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        logger.info("Creating PayOS payment link orderCode=%s amount=%s", order_code, amount)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(f"{self.base_url}/v2/payment-requests", json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise PayOSError(f"PayOS request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"body": response.text}

        if response.status_code >= 400 or payload.get("code") != "00":
            logger.warning("PayOS API error %s: %s", response.status_code, payload)
            raise PayOSError(
                payload.get("desc") or "PayOS create error",
                status_code=response.status_code,
                payload=payload,
            )

        data = payload.get("data") or {}
        qr = vietqr_image_url(amount, data.get("description") or body["description"]) or data.get("qrCode")
        return PaymentLink(
            order_code=order_code,
            amount=amount,
            checkout_url=data.get("checkoutUrl", ""),
            qr_data_url=qr,
        )


def get_payos_client() -> PayOSClient:
    if not (settings.PAYOS_CLIENT_ID and settings.PAYOS_API_KEY and settings.PAYOS_CHECKSUM_KEY):
        raise ConfigurationError("Missing PayOS configuration (PAYOS_CLIENT_ID / PAYOS_API_KEY / PAYOS_CHECKSUM_KEY)")
    return PayOSClient(
        client_id=settings.PAYOS_CLIENT_ID,
        api_key=settings.PAYOS_API_KEY,
        checksum_key=settings.PAYOS_CHECKSUM_KEY,
        base_url=settings.PAYOS_BASE_URL,
        timeout=settings.PAYOS_TIMEOUT_SECONDS,
    )
