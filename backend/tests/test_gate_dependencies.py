import uuid
from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from app.api.deps import attach_subscription_info, require_entitlement, require_premium
from app.core.clock import utcnow
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.session import get_db


@pytest.fixture()
def gated_client(session_factory):
    app = FastAPI()

    @app.get("/api/orders", dependencies=[Depends(require_entitlement), Depends(attach_subscription_info)])
    def list_orders():
        return {"orders": []}

    @app.post("/api/orders", dependencies=[Depends(require_entitlement), Depends(attach_subscription_info)])
    def create_order():
        return {"created": True}

    @app.get("/api/reports/advanced", dependencies=[Depends(require_premium)])
    def advanced_report():
        return {"report": "ok"}

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    return TestClient(app)


def _add(db, owner, **fields):
    db.add(Subscription(id=uuid.uuid4(), owner_id=owner.id, **fields))
    db.commit()


def test_gate_allows_running_trial_and_sets_headers(gated_client, make_owner, auth_headers):
    owner = make_owner()

    response = gated_client.post("/api/orders", headers=auth_headers(owner))

    assert response.status_code == 200
    assert response.headers["X-Subscription-Status"] == "TRIAL"
    assert response.headers["X-Subscription-Days-Remaining"] == "14"


def test_gate_rejects_lapsed_trial_with_structured_detail(gated_client, db_session, make_owner, auth_headers):
    owner = make_owner()
    now = utcnow()
    _add(
        db_session,
        owner,
        status=SubscriptionStatus.TRIAL.value,
        trial_started_at=now - timedelta(days=15),
        trial_ends_at=now - timedelta(days=1),
    )

    assert gated_client.get("/api/orders", headers=auth_headers(owner)).status_code == 200

    response = gated_client.post("/api/orders", headers=auth_headers(owner))
    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["reason"] == "trial-ended"
    assert detail["subscription_status"] == "EXPIRED"
    assert detail["upgrade_required"] is True


def test_gate_rejects_staff_of_lapsed_owner(
    gated_client, db_session, make_owner, make_store, make_staff, auth_headers
):
    owner = make_owner()
    staff = make_staff(make_store(owner))
    now = utcnow()
    _add(
        db_session,
        owner,
        status=SubscriptionStatus.ACTIVE.value,
        plan_duration=1,
        started_at=now - timedelta(days=40),
        expires_at=now - timedelta(days=9),
    )

    response = gated_client.post("/api/orders", headers=auth_headers(staff))

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["reason"] == "manager-expired"
    assert detail["manager_expired"] is True
    assert detail["is_staff"] is True


def test_premium_only_route(gated_client, db_session, make_owner, auth_headers):
    trial_owner = make_owner()
    response = gated_client.get("/api/reports/advanced", headers=auth_headers(trial_owner))
    assert response.status_code == 403
    assert response.json()["detail"]["reason"] == "plan-invalid"

    premium_owner = make_owner(is_premium=True)
    now = utcnow()
    _add(
        db_session,
        premium_owner,
        status=SubscriptionStatus.ACTIVE.value,
        plan_duration=3,
        started_at=now,
        expires_at=now + timedelta(days=90),
    )
    assert gated_client.get("/api/reports/advanced", headers=auth_headers(premium_owner)).status_code == 200
