"""Starting and abandoning provider checkouts."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import AlreadyActive, NoPendingCheckout, OwnerOnly
from app.core.logging import get_logger
from app.db.models.account import Account
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services.payos import PayOSClient, build_order_code
from app.services.plans import Plan, get_plan
from app.services.subscriptions import find_latest, find_live, find_outstanding_checkout

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    subscription: Subscription
    plan: Plan
    order_code: str
    amount: int
    checkout_url: str | None
    qr_data_url: str | None
    reused: bool = False


def pending_timeout() -> timedelta:
    return timedelta(minutes=settings.SUBSCRIPTION_PENDING_TIMEOUT_MINUTES)


def _require_owner(account: Account) -> None:
    if not account.is_owner:
        raise OwnerOnly("Only the store manager can purchase a subscription", user_role=account.role)


def _checkout_row(db: Session, owner_id: uuid.UUID) -> Subscription:
    """Row that will carry the PENDING state.

    A running trial is left alone so the owner keeps access while paying;
    otherwise the latest historical row is reused.
    """
    live = find_live(db, owner_id)
    if live is None:
        latest = find_latest(db, owner_id)
        if latest is not None:
            return latest
    sub = Subscription(id=uuid.uuid4(), owner_id=owner_id, status=SubscriptionStatus.PENDING.value)
    db.add(sub)
    return sub


def start_checkout(
    db: Session,
    account: Account,
    plan_duration,
    client: PayOSClient,
    now: datetime | None = None,
) -> CheckoutResult:
    _require_owner(account)
    plan = get_plan(plan_duration)
    now = now or utcnow()

    live = find_live(db, account.id)
    if live is not None and live.is_premium_active(now):
        raise AlreadyActive(
            "Subscription is already active; use renewal instead",
            expires_at=live.expires_at.isoformat() if live.expires_at else None,
        )

    outstanding = find_outstanding_checkout(db, account.id)
    if outstanding is not None:
        if outstanding.is_pending_fresh(pending_timeout(), now):
            reused_plan = get_plan(outstanding.pending_plan_duration)
            return CheckoutResult(
                subscription=outstanding,
                plan=reused_plan,
                order_code=outstanding.pending_order_code,
                amount=outstanding.pending_amount,
                checkout_url=outstanding.pending_checkout_url,
                qr_data_url=outstanding.pending_qr_url,
                reused=True,
            )
        logger.info("Voiding stale checkout %s for owner %s", outstanding.pending_order_code, account.id)
        outstanding.void_checkout()
        db.flush()

    order_code = build_order_code(account.id, plan.duration, now)
    link = client.create_payment_link(
        order_code=order_code,
        amount=plan.price,
        description=f"Premium {plan.duration}M",
        return_url=settings.subscription_return_url,
        cancel_url=settings.subscription_cancel_url,
    )

    sub = _checkout_row(db, account.id)
    sub.status = SubscriptionStatus.PENDING.value
    sub.mark_pending_payment(
        order_code=order_code,
        amount=plan.price,
        plan_duration=plan.duration,
        checkout_url=link.checkout_url,
        qr_url=link.qr_data_url,
        now=now,
    )
    db.commit()

    logger.info("Checkout %s started for owner %s (%s month(s))", order_code, account.id, plan.duration)
    return CheckoutResult(
        subscription=sub,
        plan=plan,
        order_code=order_code,
        amount=plan.price,
        checkout_url=link.checkout_url,
        qr_data_url=link.qr_data_url,
    )


def abandon_checkout(db: Session, account: Account) -> Subscription:
    """Void the caller's outstanding checkout (provider cancel return)."""
    _require_owner(account)
    outstanding = find_outstanding_checkout(db, account.id)
    if outstanding is None:
        raise NoPendingCheckout("No outstanding checkout")

    order_code = outstanding.pending_order_code
    outstanding.void_checkout()
    db.commit()
    logger.info("Checkout %s abandoned by owner %s", order_code, account.id)
    return outstanding
