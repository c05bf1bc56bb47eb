"""Request-time entitlement decisions.

The gate is the only place where an ineligible billing state ends a request.
Order of evaluation:

1. always-allowed paths (own profile/password, billing self-service, activity log)
2. read-only grace: GET on business-data prefixes or a single store detail
3. delegated staff inherit the entitlement of their store's owner
4. owners: bootstrap a trial on first touch, otherwise evaluate their row,
   flipping rows whose clock has run out to EXPIRED as a side effect
"""
from __future__ import annotations

import enum
import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.logging import get_logger
from app.db.models.account import Account
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.services.accounts import resolve_store_owner, set_premium_flag
from app.services.subscriptions import create_trial, find_latest, find_latest_settled, find_live

logger = get_logger(__name__)

ALWAYS_ALLOWED_PREFIXES = (
    "/api/users/me",
    "/api/users/profile",
    "/api/users/password",
    "/api/users/change-password",
    "/api/subscriptions",
    "/api/activity-logs",
)

READ_ONLY_PREFIXES = (
    "/api/orders",
    "/api/financials",
    "/api/revenues",
    "/api/products",
    "/api/customers",
    "/api/notifications",
    "/api/stock",
    "/api/stock-checks",
    "/api/stock-disposals",
    "/api/purchase-orders",
    "/api/purchase-returns",
    "/api/suppliers",
)

_STORE_DETAIL_RE = re.compile(r"^/api/stores/[^/]+/?$")
_SAFE_METHODS = {"GET", "HEAD"}


class Reason(str, enum.Enum):
    TRIAL_ENDED = "trial-ended"
    PREMIUM_ENDED = "premium-ended"
    MANAGER_EXPIRED = "manager-expired"
    PLAN_INVALID = "plan-invalid"


_MESSAGES = {
    Reason.TRIAL_ENDED: "Your free trial has ended. Please upgrade to Premium.",
    Reason.PREMIUM_ENDED: "Your Premium plan has expired. Please renew.",
    Reason.MANAGER_EXPIRED: "The store manager's subscription has expired. Please contact your manager.",
    Reason.PLAN_INVALID: "Your account has no valid plan for this feature.",
}


@dataclass
class Decision:
    allowed: bool
    rule: str
    reason: Optional[Reason] = None
    subscription: Optional[Subscription] = None
    is_staff: bool = False

    def detail(self) -> Dict[str, Any]:
        """Structured 403 payload for client-side routing."""
        sub = self.subscription
        status = sub.status if sub is not None else None
        return {
            "reason": self.reason.value if self.reason else None,
            "message": _MESSAGES.get(self.reason, ""),
            "subscription_status": status,
            "is_staff": self.is_staff,
            "manager_expired": self.reason == Reason.MANAGER_EXPIRED,
            "upgrade_required": self.reason in (Reason.TRIAL_ENDED, Reason.PLAN_INVALID),
            "renew_required": self.reason == Reason.PREMIUM_ENDED,
        }


def _allow(rule: str, sub: Subscription | None = None, is_staff: bool = False) -> Decision:
    return Decision(allowed=True, rule=rule, subscription=sub, is_staff=is_staff)


def _reject(reason: Reason, rule: str, sub: Subscription | None = None, is_staff: bool = False) -> Decision:
    return Decision(allowed=False, rule=rule, reason=reason, subscription=sub, is_staff=is_staff)


def _matches(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def is_always_allowed(path: str) -> bool:
    return any(_matches(path, prefix) for prefix in ALWAYS_ALLOWED_PREFIXES)


def is_read_only_grace(path: str, method: str) -> bool:
    if method.upper() not in _SAFE_METHODS:
        return False
    if _STORE_DETAIL_RE.match(path):
        return True
    return any(_matches(path, prefix) for prefix in READ_ONLY_PREFIXES)


def _flip_expired(db: Session, sub: Subscription) -> None:
    was_premium = sub.status == SubscriptionStatus.ACTIVE.value
    sub.expire()
    if was_premium:
        set_premium_flag(db, sub.owner_id, False)
    db.commit()
    logger.info("Subscription %s of owner %s flipped to EXPIRED", sub.id, sub.owner_id)


def _evaluate_status(db: Session, sub: Subscription, now: datetime) -> Decision:
    if sub.status == SubscriptionStatus.TRIAL.value:
        if not sub.is_expired(now):
            return _allow("trial", sub)
        _flip_expired(db, sub)
        return _reject(Reason.TRIAL_ENDED, "trial", sub)

    if sub.status == SubscriptionStatus.ACTIVE.value:
        if not sub.is_expired(now):
            return _allow("premium", sub)
        _flip_expired(db, sub)
        return _reject(Reason.PREMIUM_ENDED, "premium", sub)

    if sub.status == SubscriptionStatus.EXPIRED.value:
        reason = Reason.PREMIUM_ENDED if sub.has_paid_plan else Reason.TRIAL_ENDED
        return _reject(reason, "expired", sub)

    return _reject(Reason.PLAN_INVALID, "status", sub)


def _decisive_row(db: Session, owner_id: uuid.UUID) -> Subscription | None:
    """Live row, else the settled history a checkout row sits next to, else anything."""
    return find_live(db, owner_id) or find_latest_settled(db, owner_id) or find_latest(db, owner_id)


def _staff_owner(db: Session, account: Account) -> uuid.UUID | None:
    return resolve_store_owner(db, account)


def _evaluate_staff(db: Session, account: Account, now: datetime) -> Decision:
    owner_id = _staff_owner(db, account)
    if owner_id is None:
        return _reject(Reason.PLAN_INVALID, "staff-no-store", is_staff=True)

    sub = find_live(db, owner_id)
    if sub is None or sub.is_expired(now):
        return _reject(Reason.MANAGER_EXPIRED, "staff", sub, is_staff=True)
    return _allow("staff", sub, is_staff=True)


def _evaluate_owner(db: Session, account: Account, now: datetime) -> Decision:
    sub = _decisive_row(db, account.id)
    if sub is None:
        sub = create_trial(db, account.id, now)
        db.commit()
        return _allow("trial-bootstrap", sub)
    return _evaluate_status(db, sub, now)


def evaluate(
    db: Session,
    account: Account,
    path: str,
    method: str,
    now: datetime | None = None,
) -> Decision:
    """Decide whether ``account`` may perform ``method path``."""
    now = now or utcnow()

    if is_always_allowed(path):
        return _allow("always-allowed", is_staff=account.is_staff)
    if is_read_only_grace(path, method):
        return _allow("read-only", is_staff=account.is_staff)

    if account.is_staff:
        decision = _evaluate_staff(db, account, now)
    else:
        decision = _evaluate_owner(db, account, now)

    if not decision.allowed:
        logger.info(
            "Entitlement denied account=%s path=%s reason=%s",
            account.id,
            path,
            decision.reason.value if decision.reason else None,
        )
    return decision


def evaluate_premium(db: Session, account: Account, now: datetime | None = None) -> Decision:
    """Hard premium gate: ACTIVE and unexpired, no trial, no read-only grace."""
    now = now or utcnow()

    if account.is_staff:
        owner_id = _staff_owner(db, account)
        if owner_id is None:
            return _reject(Reason.PLAN_INVALID, "premium-staff-no-store", is_staff=True)
        sub = find_live(db, owner_id)
        if sub is not None and sub.is_premium_active(now):
            return _allow("premium-staff", sub, is_staff=True)
        return _reject(Reason.MANAGER_EXPIRED, "premium-staff", sub, is_staff=True)

    sub = _decisive_row(db, account.id)
    if sub is not None and sub.is_premium_active(now):
        return _allow("premium-only", sub)
    if sub is not None and sub.status == SubscriptionStatus.ACTIVE.value:
        _flip_expired(db, sub)
        return _reject(Reason.PREMIUM_ENDED, "premium-only", sub)
    if sub is not None and sub.status == SubscriptionStatus.EXPIRED.value and sub.has_paid_plan:
        return _reject(Reason.PREMIUM_ENDED, "premium-only", sub)
    return _reject(Reason.PLAN_INVALID, "premium-only", sub)


def subscription_info(db: Session, account: Account, now: datetime | None = None) -> Dict[str, Any] | None:
    """Display data for the client; never used to decide access."""
    now = now or utcnow()
    owner_id = _staff_owner(db, account) if account.is_staff else account.id
    if owner_id is None:
        return None
    sub = _decisive_row(db, owner_id)
    if sub is None:
        return None
    clock = sub.authoritative_clock
    return {
        "status": sub.status,
        "is_premium": bool(account.is_premium),
        "days_remaining": sub.days_remaining(now),
        "ends_at": clock.isoformat() if clock else None,
    }
