import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from app.services import payos
from app.services.payos import (
    PayOSClient,
    PayOSError,
    build_order_code,
    compute_body_signature,
    parse_order_code,
    verify_body_signature,
)


def test_order_code_shape():
    owner_id = uuid.UUID("6f1c9a8e-2b3d-4c5e-8f90-1a2b3c4d5e6f")
    now = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)

    code = build_order_code(owner_id, 3, now)

    assert code == f"SUB_{owner_id}_3_{int(now.timestamp() * 1000)}"
    parsed = parse_order_code(code)
    assert parsed.owner_id == owner_id
    assert parsed.plan_duration == 3
    assert str(parsed) == code


@pytest.mark.parametrize("value", [None, "", "ORDER_123", "SUB_not-a-uuid_1_123", 123456789])
def test_foreign_order_codes_are_rejected(value):
    assert parse_order_code(value) is None


def test_body_signature_is_case_insensitive_hex():
    body = b'{"code":"00","data":{"orderCode":"x"}}'
    signature = compute_body_signature(body, "secret")

    assert verify_body_signature(body, signature, "secret")
    assert verify_body_signature(body, signature.upper(), "secret")
    assert not verify_body_signature(body + b" ", signature, "secret")
    assert not verify_body_signature(body, signature, "other-secret")
    assert not verify_body_signature(body, None, "secret")


class _FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def json(self):
        return self._payload


class _FakeHttpClient:
    def __init__(self, response=None, error=None, **_kwargs):
        self.response = response
        self.error = error
        self.sent = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def post(self, url, json=None, headers=None):
        self.sent = {"url": url, "json": json, "headers": headers}
        if self.error:
            raise self.error
        return self.response


def _client():
    return PayOSClient(client_id="cid", api_key="key", checksum_key="sum", base_url="https://payos.test")


def test_create_payment_link(monkeypatch):
    http = _FakeHttpClient(
        response=_FakeResponse(200, {"code": "00", "data": {"checkoutUrl": "https://pay/1", "qrCode": "000201"}})
    )
    monkeypatch.setattr(payos.httpx, "Client", lambda **kw: http)
    monkeypatch.setattr(payos.settings, "VIETQR_ACQ_ID", None)

    link = _client().create_payment_link(
        order_code="SUB_x_1_1",
        amount=199000,
        description="Premium 1M",
        return_url="https://app/ok",
        cancel_url="https://app/cancel",
    )

    assert link.checkout_url == "https://pay/1"
    assert link.qr_data_url == "000201"
    assert http.sent["url"] == "https://payos.test/v2/payment-requests"
    assert http.sent["headers"]["x-client-id"] == "cid"
    assert len(http.sent["json"]["signature"]) == 64


def test_create_payment_link_provider_error(monkeypatch):
    http = _FakeHttpClient(response=_FakeResponse(200, {"code": "20", "desc": "Invalid amount"}))
    monkeypatch.setattr(payos.httpx, "Client", lambda **kw: http)

    with pytest.raises(PayOSError) as exc_info:
        _client().create_payment_link(
            order_code="SUB_x_1_1", amount=1, description="x", return_url="r", cancel_url="c"
        )
    assert "Invalid amount" in str(exc_info.value)


def test_create_payment_link_transport_error(monkeypatch):
    http = _FakeHttpClient(error=httpx.ConnectError("boom"))
    monkeypatch.setattr(payos.httpx, "Client", lambda **kw: http)

    with pytest.raises(PayOSError):
        _client().create_payment_link(
            order_code="SUB_x_1_1", amount=1, description="x", return_url="r", cancel_url="c"
        )
