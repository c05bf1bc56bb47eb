"""Pydantic schemas for the subscription API."""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


class PlanOut(BaseModel):
    duration: int
    label: str
    price: int
    original_price: int
    discount: int
    discount_percent: int
    price_per_month: int
    badge: Optional[str] = None


class PlanCatalogOut(BaseModel):
    plans: List[PlanOut]
    trial_days: int


class TrialPlan(BaseModel):
    """Running or finished free trial."""

    kind: Literal["trial"] = "trial"
    started_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    is_active: bool


class PremiumPlan(BaseModel):
    """Paid premium period."""

    kind: Literal["premium"] = "premium"
    plan_duration: Optional[int] = None
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    auto_renew: bool = False
    is_active: bool


class NoPlan(BaseModel):
    kind: Literal["none"] = "none"


PlanState = Annotated[Union[TrialPlan, PremiumPlan, NoPlan], Field(discriminator="kind")]


class PendingPaymentOut(BaseModel):
    order_code: str
    plan_duration: Optional[int] = None
    amount: Optional[int] = None
    checkout_url: Optional[str] = None
    qr_data_url: Optional[str] = None
    created_at: Optional[datetime] = None


class SubscriptionSummary(BaseModel):
    subscription_id: UUID
    status: str
    is_premium: bool
    days_remaining: int
    plan: PlanState
    pending_payment: Optional[PendingPaymentOut] = None


class CheckoutIn(BaseModel):
    plan_duration: int


class CheckoutPlanOut(BaseModel):
    duration: int
    label: str
    discount: int


class CheckoutOut(BaseModel):
    checkout_url: Optional[str] = None
    qr_data_url: Optional[str] = None
    amount: int
    transaction_id: str
    plan: CheckoutPlanOut
    pending: bool = True
    reused: bool = False


class ActivateIn(BaseModel):
    plan_duration: int
    amount: int = Field(gt=0)
    transaction_id: str = Field(min_length=1)


class ActivatedOut(BaseModel):
    status: str
    plan_duration: Optional[int] = None
    expires_at: Optional[datetime] = None
    days_remaining: int
    is_renewal: bool


class CancelOut(BaseModel):
    auto_renew: bool
    expires_at: Optional[datetime] = None


class PaymentHistoryOut(BaseModel):
    plan_duration: int
    amount: int
    paid_at: Optional[datetime] = None
    transaction_id: str
    payment_method: str
    status: str
    notes: Optional[str] = None


class PaymentHistoryList(BaseModel):
    data: List[PaymentHistoryOut]


class UsageCounts(BaseModel):
    stores: int
    staff: int
    payments: int


class UsageOut(BaseModel):
    usage: UsageCounts
    is_premium: bool
