import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from app.core.clock import add_months, ensure_utc
from app.core.errors import InvalidPlan, OwnerOnly
from app.db.models.account import Account
from app.db.models.payment_history import PaymentHistoryRecord
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services.activation import activate_manually, activate_pending, ledger_note
from app.services.checkout import start_checkout
from app.services.payos import parse_order_code


def _ledger(db, owner):
    return list(
        db.execute(
            select(PaymentHistoryRecord)
            .where(PaymentHistoryRecord.owner_id == owner.id)
            .order_by(PaymentHistoryRecord.paid_at.asc())
        ).scalars()
    )


def test_ledger_note():
    assert ledger_note(1, "MANUAL", True) == "renewal: +1 month(s) - MANUAL"
    assert ledger_note(6, "PAYOS", False) == "new activation: 6 month(s) - PAYOS"


def test_activation_then_renewal_stacks(db_session, session_factory, make_owner, now):
    owner = make_owner()
    trial = Subscription(
        id=uuid.uuid4(),
        owner_id=owner.id,
        status=SubscriptionStatus.TRIAL.value,
        trial_started_at=now - timedelta(days=4),
        trial_ends_at=now + timedelta(days=10),
    )
    db_session.add(trial)
    db_session.commit()

    first = activate_manually(db_session, owner, plan_duration=6, amount=899000, transaction_id="BANK-001", now=now)

    assert not first.is_renewal
    assert first.subscription.id == trial.id
    first_expiry = add_months(now, 6)
    assert ensure_utc(first.subscription.expires_at) == first_expiry

    later = now + timedelta(days=40)
    second = activate_manually(db_session, owner, plan_duration=1, amount=199000, transaction_id="BANK-002", now=later)

    assert second.is_renewal
    assert second.subscription.id == trial.id
    assert ensure_utc(second.subscription.expires_at) == add_months(first_expiry, 1)
    assert second.subscription.auto_renew is False
    assert ensure_utc(second.subscription.started_at) == now

    records = _ledger(db_session, owner)
    assert [r.notes for r in records] == [
        "new activation: 6 month(s) - MANUAL",
        "renewal: +1 month(s) - MANUAL",
    ]
    assert [r.amount for r in records] == [899000, 199000]
    assert all(r.status == "SUCCESS" for r in records)

    with session_factory() as fresh:
        assert fresh.get(Account, owner.id).is_premium is True


def test_activation_clears_outstanding_checkout(db_session, make_owner, payos_client, now):
    owner = make_owner()
    checkout = start_checkout(db_session, owner, 3, payos_client, now)

    result = activate_manually(db_session, owner, plan_duration=3, amount=499000, transaction_id="CASH-1", now=now)

    assert result.subscription.id == checkout.subscription.id
    assert result.subscription.pending_order_code is None
    assert result.subscription.status == SubscriptionStatus.ACTIVE.value


def test_activation_materializes_row(db_session, make_owner, now):
    owner = make_owner()

    result = activate_manually(db_session, owner, plan_duration=1, amount=199000, transaction_id="T-1", now=now)

    assert result.subscription.status == SubscriptionStatus.ACTIVE.value
    assert result.subscription.payment_method == "MANUAL"
    assert len(_ledger(db_session, owner)) == 1


def test_activation_after_lapse_starts_fresh(db_session, make_owner, now):
    owner = make_owner()
    db_session.add(
        Subscription(
            id=uuid.uuid4(),
            owner_id=owner.id,
            status=SubscriptionStatus.EXPIRED.value,
            plan_duration=1,
            started_at=now - timedelta(days=70),
            expires_at=now - timedelta(days=40),
        )
    )
    db_session.commit()

    result = activate_manually(db_session, owner, plan_duration=3, amount=499000, transaction_id="T-2", now=now)

    assert not result.is_renewal
    assert ensure_utc(result.subscription.started_at) == now
    assert ensure_utc(result.subscription.expires_at) == add_months(now, 3)


def test_activation_validates_input(db_session, make_owner, make_store, make_staff, now):
    owner = make_owner()
    with pytest.raises(InvalidPlan):
        activate_manually(db_session, owner, plan_duration=12, amount=1, transaction_id="T", now=now)

    staff = make_staff(make_store(owner))
    with pytest.raises(OwnerOnly):
        activate_manually(db_session, staff, plan_duration=1, amount=1, transaction_id="T", now=now)


def _rows(db, owner):
    return list(db.execute(select(Subscription).where(Subscription.owner_id == owner.id)).scalars())


def test_manual_activation_voids_checkout_on_another_row(db_session, make_owner, payos_client, now):
    owner = make_owner()
    trial = Subscription(
        id=uuid.uuid4(),
        owner_id=owner.id,
        status=SubscriptionStatus.TRIAL.value,
        trial_started_at=now - timedelta(days=1),
        trial_ends_at=now + timedelta(days=13),
    )
    db_session.add(trial)
    db_session.commit()
    checkout = start_checkout(db_session, owner, 3, payos_client, now)
    assert checkout.subscription.id != trial.id

    manual = activate_manually(db_session, owner, plan_duration=6, amount=899000, transaction_id="BANK-7", now=now)
    order = parse_order_code(checkout.order_code)
    late = activate_pending(db_session, order, amount=499000, now=now + timedelta(minutes=5))

    assert late is None
    rows = _rows(db_session, owner)
    active = [r for r in rows if r.status == SubscriptionStatus.ACTIVE.value]
    assert [r.id for r in active] == [manual.subscription.id]
    assert ensure_utc(active[0].expires_at) == add_months(now, 6)
    db_session.refresh(checkout.subscription)
    assert checkout.subscription.status == SubscriptionStatus.EXPIRED.value
    assert checkout.subscription.pending_order_code is None
    assert len(_ledger(db_session, owner)) == 1


def test_paid_checkout_stacks_onto_running_premium(db_session, make_owner, now):
    owner = make_owner(is_premium=True)
    running = Subscription(
        id=uuid.uuid4(),
        owner_id=owner.id,
        status=SubscriptionStatus.ACTIVE.value,
        plan_duration=1,
        started_at=now - timedelta(days=10),
        expires_at=now + timedelta(days=20),
    )
    order_code = f"SUB_{owner.id}_3_1773133200000"
    checkout_row = Subscription(
        id=uuid.uuid4(),
        owner_id=owner.id,
        status=SubscriptionStatus.PENDING.value,
        pending_order_code=order_code,
        pending_amount=499000,
        pending_plan_duration=3,
        pending_created_at=now - timedelta(minutes=2),
    )
    db_session.add_all([running, checkout_row])
    db_session.commit()
    old_expiry = ensure_utc(running.expires_at)

    result = activate_pending(db_session, parse_order_code(order_code), amount=499000, now=now)

    assert result.is_renewal
    assert result.subscription.id == running.id
    assert ensure_utc(result.subscription.expires_at) == add_months(old_expiry, 3)
    db_session.refresh(checkout_row)
    assert checkout_row.status == SubscriptionStatus.EXPIRED.value
    assert checkout_row.pending_order_code is None
    active = [r for r in _rows(db_session, owner) if r.status == SubscriptionStatus.ACTIVE.value]
    assert [r.id for r in active] == [running.id]
    assert _ledger(db_session, owner)[-1].notes == "renewal: +3 month(s) - PAYOS"
