"""Turning a payment into premium time: manual/operator and provider paths."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.errors import OwnerOnly
from app.core.logging import get_logger
from app.db.models.account import Account
from app.db.models.payment_history import PaymentHistoryRecord
from app.db.models.subscription import PaymentMethod, Subscription, SubscriptionStatus
from app.services.accounts import set_premium_flag
from app.services.payos import OrderCode
from app.services.plans import get_plan
from app.services.subscriptions import claim_pending, find_current, find_live, find_outstanding_checkouts

logger = get_logger(__name__)


@dataclass
class ActivationResult:
    subscription: Subscription
    record: PaymentHistoryRecord
    is_renewal: bool


def ledger_note(plan_duration: int, method: str, is_renewal: bool) -> str:
    if is_renewal:
        return f"renewal: +{plan_duration} month(s) - {method}"
    return f"new activation: {plan_duration} month(s) - {method}"


def _append_ledger(
    db: Session,
    sub: Subscription,
    *,
    amount: int,
    method: str,
    transaction_id: str,
    is_renewal: bool,
    now: datetime,
) -> PaymentHistoryRecord:
    record = PaymentHistoryRecord(
        owner_id=sub.owner_id,
        subscription_id=sub.id,
        transaction_id=transaction_id,
        plan_duration=sub.plan_duration,
        amount=amount,
        payment_method=method,
        status="SUCCESS",
        paid_at=now,
        notes=ledger_note(sub.plan_duration, method, is_renewal),
    )
    db.add(record)
    return record


def _supersede_trials(db: Session, owner_id: uuid.UUID, keep: Subscription, now: datetime) -> None:
    trials = db.execute(
        select(Subscription).where(
            Subscription.owner_id == owner_id,
            Subscription.status == SubscriptionStatus.TRIAL.value,
            Subscription.id != keep.id,
        )
    ).scalars().all()
    for trial in trials:
        trial.supersede("superseded by premium", now)


def activate_manually(
    db: Session,
    account: Account,
    *,
    plan_duration: int,
    amount: int,
    transaction_id: str,
    now: datetime | None = None,
) -> ActivationResult:
    """Operator-confirmed payment. Stacks onto a running premium period."""
    if not account.is_owner:
        raise OwnerOnly("Only the store manager can activate a subscription", user_role=account.role)

    plan = get_plan(plan_duration)
    now = now or utcnow()

    sub = find_current(db, account.id)
    if sub is None:
        sub = Subscription(id=uuid.uuid4(), owner_id=account.id, status=SubscriptionStatus.EXPIRED.value)
        db.add(sub)
        logger.info("Materialized subscription row for owner %s", account.id)

    if sub.pending_order_code:
        sub.clear_pending_payment()
    # A checkout on another row must not activate a second period later
    for other in find_outstanding_checkouts(db, account.id):
        if other.id != sub.id:
            logger.info("Voiding checkout %s superseded by manual activation", other.pending_order_code)
            other.void_checkout()

    is_renewal = sub.status == SubscriptionStatus.ACTIVE.value and not sub.is_expired(now)
    if is_renewal:
        sub.extend(plan.duration, now)
        sub.auto_renew = False
    else:
        sub.activate(plan.duration, now)

    sub.record_payment(amount=amount, method=PaymentMethod.MANUAL.value, transaction_id=transaction_id, now=now)
    db.flush()
    _supersede_trials(db, account.id, sub, now)
    set_premium_flag(db, account.id, True)
    record = _append_ledger(
        db,
        sub,
        amount=amount,
        method=PaymentMethod.MANUAL.value,
        transaction_id=transaction_id,
        is_renewal=is_renewal,
        now=now,
    )
    db.commit()

    logger.info(
        "%s premium for owner %s: +%s month(s), expires %s",
        "Renewed" if is_renewal else "Activated",
        account.id,
        plan.duration,
        sub.expires_at,
    )
    return ActivationResult(subscription=sub, record=record, is_renewal=is_renewal)


def activate_pending(
    db: Session,
    order: OrderCode,
    *,
    amount: int | None,
    now: datetime | None = None,
) -> ActivationResult | None:
    """Provider-confirmed payment for a checkout. ``None`` when nothing is pending.

    When the owner already holds a running premium row the paid months are
    stacked onto it and the claimed checkout row is closed, so an owner never
    ends up with two ACTIVE rows.
    """
    now = now or utcnow()
    pending = claim_pending(db, order.owner_id, order.plan_duration)
    if pending is None:
        return None

    plan_duration = pending.pending_plan_duration or order.plan_duration
    paid_amount = amount if amount is not None else (pending.pending_amount or 0)

    live = find_live(db, order.owner_id)
    is_renewal = live is not None and live.id != pending.id and live.is_premium_active(now)
    if is_renewal:
        sub = live
        sub.extend(plan_duration, now)
        pending.void_checkout()
    else:
        sub = pending
        sub.clear_pending_payment()
        sub.activate(plan_duration, now)

    sub.record_payment(amount=paid_amount, method=PaymentMethod.PAYOS.value, transaction_id=str(order), now=now)
    db.flush()
    _supersede_trials(db, order.owner_id, sub, now)
    set_premium_flag(db, order.owner_id, True)
    record = _append_ledger(
        db,
        sub,
        amount=paid_amount,
        method=PaymentMethod.PAYOS.value,
        transaction_id=str(order),
        is_renewal=is_renewal,
        now=now,
    )
    db.commit()

    logger.info(
        "%s premium for owner %s via PayOS order %s, expires %s",
        "Renewed" if is_renewal else "Activated",
        order.owner_id,
        order,
        sub.expires_at,
    )
    return ActivationResult(subscription=sub, record=record, is_renewal=is_renewal)
