"""Subscription lookups and the atomic trial bootstrap."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from sqlalchemy import case, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.errors import OwnerOnly, SubscriptionNotFound
from app.core.logging import get_logger
from app.db.models.account import Account
from app.db.models.payment_history import PaymentHistoryRecord
from app.db.models.subscription import LIVE_STATUSES, Subscription, SubscriptionStatus

logger = get_logger(__name__)

# ACTIVE wins over TRIAL when an owner briefly holds both
_LIVE_PREFERENCE = case(
    (Subscription.status == SubscriptionStatus.ACTIVE.value, 0),
    else_=1,
)


def find_live(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    """Latest TRIAL/ACTIVE row of an owner, ACTIVE first."""
    return db.execute(
        select(Subscription)
        .where(Subscription.owner_id == owner_id, Subscription.status.in_(LIVE_STATUSES))
        .order_by(_LIVE_PREFERENCE, Subscription.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def find_latest(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    """Most recent row of any status."""
    return db.execute(
        select(Subscription)
        .where(Subscription.owner_id == owner_id)
        .order_by(Subscription.updated_at.desc(), Subscription.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def find_latest_settled(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    """Most recent row that is not just carrying a checkout."""
    return db.execute(
        select(Subscription)
        .where(
            Subscription.owner_id == owner_id,
            Subscription.status != SubscriptionStatus.PENDING.value,
        )
        .order_by(Subscription.updated_at.desc(), Subscription.created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def find_current(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    """The row that represents an owner's billing state: live first, else history."""
    return find_live(db, owner_id) or find_latest(db, owner_id)


def find_outstanding_checkout(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    return db.execute(
        select(Subscription)
        .where(
            Subscription.owner_id == owner_id,
            Subscription.pending_order_code.is_not(None),
        )
        .order_by(Subscription.pending_created_at.desc())
        .limit(1)
    ).scalar_one_or_none()


def find_outstanding_checkouts(db: Session, owner_id: uuid.UUID) -> list[Subscription]:
    """Every row of an owner still carrying a pending block."""
    return list(
        db.execute(
            select(Subscription).where(
                Subscription.owner_id == owner_id,
                Subscription.pending_order_code.is_not(None),
            )
        ).scalars()
    )


def claim_pending(db: Session, owner_id: uuid.UUID, plan_duration: int) -> Subscription | None:
    """Lock the latest PENDING row for owner + duration.

    SKIP LOCKED makes a concurrent redelivery of the same order see nothing,
    so only the first writer activates.
    """
    return db.execute(
        select(Subscription)
        .where(
            Subscription.owner_id == owner_id,
            Subscription.status == SubscriptionStatus.PENDING.value,
            Subscription.pending_plan_duration == plan_duration,
        )
        .order_by(Subscription.pending_created_at.desc())
        .limit(1)
        .with_for_update(skip_locked=True)
    ).scalar_one_or_none()


def _insert_for(db: Session):
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


def create_trial(db: Session, owner_id: uuid.UUID, now: datetime | None = None) -> Subscription:
    """Insert a TRIAL row for ``owner_id`` unless one already exists.

    One statement: INSERT ... ON CONFLICT DO NOTHING on the partial unique
    index over TRIAL rows. Values are written only by the winning insert;
    every caller gets the surviving row back. Flushes but does not commit.
    """
    now = now or utcnow()
    insert = _insert_for(db)
    stmt = (
        insert(Subscription)
        .values(
            id=uuid.uuid4(),
            owner_id=owner_id,
            status=SubscriptionStatus.TRIAL.value,
            trial_started_at=now,
            trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
            auto_renew=False,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(
            index_elements=[Subscription.owner_id],
            index_where=Subscription.status == SubscriptionStatus.TRIAL.value,
        )
    )
    result = db.execute(stmt)
    if result.rowcount:
        logger.info("Trial created for owner %s", owner_id)

    trial = db.execute(
        select(Subscription)
        .where(
            Subscription.owner_id == owner_id,
            Subscription.status == SubscriptionStatus.TRIAL.value,
        )
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if trial is None:
        # The winner's trial was already converted (expired/superseded) in between
        trial = find_latest(db, owner_id)
    return trial


def list_payments(db: Session, owner_id: uuid.UUID) -> list[PaymentHistoryRecord]:
    """Ledger rows of an owner, newest first."""
    return list(
        db.execute(
            select(PaymentHistoryRecord)
            .where(PaymentHistoryRecord.owner_id == owner_id)
            .order_by(PaymentHistoryRecord.paid_at.desc(), PaymentHistoryRecord.created_at.desc())
        ).scalars()
    )


def cancel_auto_renew(db: Session, account: Account) -> Subscription:
    """Turn off auto-renew on the live row. Access runs until the current clock."""
    if not account.is_owner:
        raise OwnerOnly("Only the store manager can cancel a subscription", user_role=account.role)
    sub = find_live(db, account.id)
    if sub is None:
        raise SubscriptionNotFound("No active subscription")
    sub.auto_renew = False
    db.commit()
    logger.info("Auto-renew disabled for owner %s (subscription %s)", account.id, sub.id)
    return sub
