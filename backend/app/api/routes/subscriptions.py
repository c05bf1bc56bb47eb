"""Subscription self-service routes."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api.deps import get_current_account, get_payment_client
from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import BillingError, OwnerOnly
from app.core.logging import get_logger
from app.db.models.account import Account
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.session import get_db
from app.schemas.subscriptions import (
    ActivatedOut,
    ActivateIn,
    CancelOut,
    CheckoutIn,
    CheckoutOut,
    CheckoutPlanOut,
    NoPlan,
    PaymentHistoryList,
    PaymentHistoryOut,
    PendingPaymentOut,
    PlanCatalogOut,
    PlanOut,
    PremiumPlan,
    SubscriptionSummary,
    TrialPlan,
    UsageCounts,
    UsageOut,
)
from app.services import activation, checkout
from app.services.accounts import usage_counts
from app.services.payos import PayOSClient, PayOSError
from app.services.plans import PLAN_CATALOG
from app.services.subscriptions import cancel_auto_renew, create_trial, find_current, list_payments

logger = get_logger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


def _raise_http(exc: BillingError) -> None:
    logger.info("Subscription request rejected: %s (%s)", exc.code, exc.message)
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


def _plan_state(sub: Subscription, now):
    if sub.status == SubscriptionStatus.TRIAL.value or (sub.trial_ends_at is not None and not sub.has_paid_plan):
        return TrialPlan(
            started_at=sub.trial_started_at,
            ends_at=sub.trial_ends_at,
            is_active=sub.is_trial_active(now),
        )
    if sub.has_paid_plan:
        return PremiumPlan(
            plan_duration=sub.plan_duration,
            started_at=sub.started_at,
            expires_at=sub.expires_at,
            auto_renew=sub.auto_renew,
            is_active=sub.is_premium_active(now),
        )
    return NoPlan()


def _summary(sub: Subscription, account: Account, now) -> SubscriptionSummary:
    pending = None
    if sub.pending_order_code:
        pending = PendingPaymentOut(
            order_code=sub.pending_order_code,
            plan_duration=sub.pending_plan_duration,
            amount=sub.pending_amount,
            checkout_url=sub.pending_checkout_url,
            qr_data_url=sub.pending_qr_url,
            created_at=sub.pending_created_at,
        )
    return SubscriptionSummary(
        subscription_id=sub.id,
        status=sub.status,
        is_premium=bool(account.is_premium),
        days_remaining=sub.days_remaining(now),
        plan=_plan_state(sub, now),
        pending_payment=pending,
    )


@router.get("/plans", response_model=PlanCatalogOut)
def list_plans():
    plans = [
        PlanOut(
            duration=plan.duration,
            label=plan.label,
            price=plan.price,
            original_price=plan.original_price,
            discount=plan.discount,
            discount_percent=plan.discount_percent,
            price_per_month=plan.price_per_month,
            badge=plan.badge,
        )
        for plan in PLAN_CATALOG.values()
    ]
    return PlanCatalogOut(plans=plans, trial_days=settings.TRIAL_DAYS)


@router.get("/current", response_model=SubscriptionSummary)
def get_current(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    if not account.is_owner:
        _raise_http(OwnerOnly("Only the store manager can view the subscription", user_role=account.role))

    now = utcnow()
    sub = find_current(db, account.id)
    if sub is None:
        sub = create_trial(db, account.id, now)
        db.commit()
    return _summary(sub, account, now)


@router.post("/checkout", response_model=CheckoutOut)
def create_checkout(
    payload: CheckoutIn,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    client: PayOSClient = Depends(get_payment_client),
):
    try:
        result = checkout.start_checkout(db, account, payload.plan_duration, client)
    except BillingError as exc:
        _raise_http(exc)
    except PayOSError as exc:
        db.rollback()
        logger.error("PayOS checkout failed for owner %s: %s", account.id, exc)
        raise HTTPException(status_code=502, detail="Payment provider error") from None

    return CheckoutOut(
        checkout_url=result.checkout_url,
        qr_data_url=result.qr_data_url,
        amount=result.amount,
        transaction_id=result.order_code,
        plan=CheckoutPlanOut(duration=result.plan.duration, label=result.plan.label, discount=result.plan.discount),
        pending=True,
        reused=result.reused,
    )


@router.post("/checkout/cancel")
def cancel_checkout(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    try:
        sub = checkout.abandon_checkout(db, account)
    except BillingError as exc:
        _raise_http(exc)
    return {"status": sub.status, "cancelled": True}


@router.post("/activate", response_model=ActivatedOut)
def activate(
    payload: ActivateIn,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    try:
        result = activation.activate_manually(
            db,
            account,
            plan_duration=payload.plan_duration,
            amount=payload.amount,
            transaction_id=payload.transaction_id,
        )
    except BillingError as exc:
        _raise_http(exc)

    sub = result.subscription
    return ActivatedOut(
        status=sub.status,
        plan_duration=sub.plan_duration,
        expires_at=sub.expires_at,
        days_remaining=sub.days_remaining(),
        is_renewal=result.is_renewal,
    )


@router.post("/cancel", response_model=CancelOut)
def cancel(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    try:
        sub = cancel_auto_renew(db, account)
    except BillingError as exc:
        _raise_http(exc)
    return CancelOut(auto_renew=sub.auto_renew, expires_at=sub.authoritative_clock)


@router.get("/history", response_model=PaymentHistoryList)
def history(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    if not account.is_owner:
        _raise_http(OwnerOnly("Only the store manager can view payment history", user_role=account.role))

    records = list_payments(db, account.id)
    return PaymentHistoryList(
        data=[
            PaymentHistoryOut(
                plan_duration=r.plan_duration,
                amount=r.amount,
                paid_at=r.paid_at,
                transaction_id=r.transaction_id,
                payment_method=r.payment_method,
                status=r.status,
                notes=r.notes,
            )
            for r in records
        ]
    )


@router.get("/usage", response_model=UsageOut)
def usage(
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
):
    if not account.is_owner:
        _raise_http(OwnerOnly("Only the store manager can view usage", user_role=account.role))

    counts = usage_counts(db, account.id)
    return UsageOut(usage=UsageCounts(**counts), is_premium=bool(account.is_premium))
