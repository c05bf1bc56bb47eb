"""Subscription database model and lifecycle state machine."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timedelta

from sqlalchemy import TIMESTAMP, Boolean, ForeignKey, Index, Integer, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.clock import add_months, ensure_utc, utcnow
from app.db.base import Base


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "TRIAL"
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, enum.Enum):
    PAYOS = "PAYOS"
    MANUAL = "MANUAL"
    BANK_TRANSFER = "BANK_TRANSFER"


LIVE_STATUSES = (SubscriptionStatus.TRIAL.value, SubscriptionStatus.ACTIVE.value)

_TRIAL_ONLY = text("status = 'TRIAL'")


class Subscription(Base):
    """Billing record of an owner account.

    ``status`` selects which clock is authoritative: ``trial_ends_at`` while
    TRIAL, ``expires_at`` while ACTIVE. The ``pending_*`` block is only set
    while a provider checkout is outstanding.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(Text, nullable=False, default=SubscriptionStatus.TRIAL.value)

    trial_started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    plan_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price_paid: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"), default=False)

    payment_method: Mapped[str | None] = mapped_column(Text, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    pending_order_code: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    pending_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pending_plan_duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pending_checkout_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pending_qr_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pending_created_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    cancelled_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    cancelled_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now(), default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        Index("ix_subscriptions_owner_status", "owner_id", "status"),
        Index("ix_subscriptions_status_expires", "status", "expires_at"),
        # Target of the trial bootstrap's ON CONFLICT DO NOTHING
        Index(
            "uq_subscriptions_owner_trial",
            "owner_id",
            unique=True,
            postgresql_where=_TRIAL_ONLY,
            sqlite_where=_TRIAL_ONLY,
        ),
    )

    # ------------------------------------------------------------------
    # Derived status

    @property
    def authoritative_clock(self) -> datetime | None:
        if self.status == SubscriptionStatus.TRIAL.value:
            return ensure_utc(self.trial_ends_at)
        if self.status == SubscriptionStatus.ACTIVE.value:
            return ensure_utc(self.expires_at)
        return None

    def is_trial_active(self, now: datetime | None = None) -> bool:
        if self.status != SubscriptionStatus.TRIAL.value or self.trial_ends_at is None:
            return False
        return (now or utcnow()) < ensure_utc(self.trial_ends_at)

    def is_premium_active(self, now: datetime | None = None) -> bool:
        if self.status != SubscriptionStatus.ACTIVE.value or self.expires_at is None:
            return False
        return (now or utcnow()) < ensure_utc(self.expires_at)

    def is_expired(self, now: datetime | None = None) -> bool:
        clock = self.authoritative_clock
        if clock is None:
            # PENDING / EXPIRED / CANCELLED, or a live status missing its clock
            return True
        return (now or utcnow()) >= clock

    def days_remaining(self, now: datetime | None = None) -> int:
        clock = self.authoritative_clock
        if clock is None:
            return 0
        today = (now or utcnow()).astimezone(clock.tzinfo).date()
        return max(0, (clock.date() - today).days)

    @property
    def has_paid_plan(self) -> bool:
        return self.plan_duration is not None and self.expires_at is not None

    # ------------------------------------------------------------------
    # Transitions

    def activate(self, plan_duration: int, now: datetime | None = None) -> "Subscription":
        now = now or utcnow()
        self.status = SubscriptionStatus.ACTIVE.value
        self.plan_duration = plan_duration
        self.started_at = now
        self.expires_at = add_months(now, plan_duration)
        self.cancelled_at = None
        self.cancelled_reason = None
        return self

    def extend(self, plan_duration: int, now: datetime | None = None) -> "Subscription":
        now = now or utcnow()
        current_expiry = ensure_utc(self.expires_at)
        if current_expiry is None or current_expiry <= now:
            return self.activate(plan_duration, now)

        self.status = SubscriptionStatus.ACTIVE.value
        self.plan_duration = plan_duration
        self.expires_at = add_months(current_expiry, plan_duration)
        if self.started_at is None:
            self.started_at = now
        return self

    def expire(self) -> "Subscription":
        self.status = SubscriptionStatus.EXPIRED.value
        return self

    def supersede(self, reason: str, now: datetime | None = None) -> "Subscription":
        self.status = SubscriptionStatus.CANCELLED.value
        self.cancelled_at = now or utcnow()
        self.cancelled_reason = reason
        return self

    def record_payment(
        self,
        *,
        amount: int | None,
        method: str,
        transaction_id: str | None,
        now: datetime | None = None,
    ) -> "Subscription":
        self.price_paid = amount
        self.payment_method = method
        self.transaction_id = transaction_id
        self.paid_at = now or utcnow()
        return self

    def mark_pending_payment(
        self,
        *,
        order_code: str,
        amount: int,
        plan_duration: int,
        checkout_url: str | None,
        qr_url: str | None,
        now: datetime | None = None,
    ) -> "Subscription":
        self.pending_order_code = order_code
        self.pending_amount = amount
        self.pending_plan_duration = plan_duration
        self.pending_checkout_url = checkout_url
        self.pending_qr_url = qr_url
        self.pending_created_at = now or utcnow()
        return self

    def clear_pending_payment(self) -> "Subscription":
        self.pending_order_code = None
        self.pending_amount = None
        self.pending_plan_duration = None
        self.pending_checkout_url = None
        self.pending_qr_url = None
        self.pending_created_at = None
        return self

    def void_checkout(self) -> "Subscription":
        """Drop the pending block; a row that only existed for the checkout ends EXPIRED."""
        self.clear_pending_payment()
        if self.status == SubscriptionStatus.PENDING.value:
            self.expire()
        return self

    def is_pending_fresh(self, timeout: timedelta, now: datetime | None = None) -> bool:
        if not self.pending_order_code:
            return False
        created = ensure_utc(self.pending_created_at)
        if created is None:
            return True
        return (now or utcnow()) - created < timeout

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, owner_id={self.owner_id}, status={self.status})>"
