import uuid
from datetime import datetime, timedelta, timezone

import pytest

from app.core.clock import add_months, ensure_utc
from app.db.models.subscription import Subscription, SubscriptionStatus

UTC = timezone.utc


def _sub(**fields) -> Subscription:
    fields.setdefault("status", SubscriptionStatus.TRIAL.value)
    return Subscription(id=uuid.uuid4(), owner_id=uuid.uuid4(), **fields)


@pytest.mark.parametrize(
    "start,months,expected",
    [
        (datetime(2026, 1, 31, 8, 30, tzinfo=UTC), 1, datetime(2026, 2, 28, 8, 30, tzinfo=UTC)),
        (datetime(2028, 1, 31, tzinfo=UTC), 1, datetime(2028, 2, 29, tzinfo=UTC)),
        (datetime(2025, 8, 31, tzinfo=UTC), 6, datetime(2026, 2, 28, tzinfo=UTC)),
        (datetime(2026, 3, 31, tzinfo=UTC), 3, datetime(2026, 6, 30, tzinfo=UTC)),
        (datetime(2026, 12, 15, tzinfo=UTC), 1, datetime(2027, 1, 15, tzinfo=UTC)),
    ],
)
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2026, 3, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
    assert ensure_utc(None) is None


def test_trial_window(now):
    sub = _sub(trial_started_at=now, trial_ends_at=now + timedelta(days=14))

    assert sub.is_trial_active(now)
    assert not sub.is_premium_active(now)
    assert not sub.is_expired(now)
    assert sub.days_remaining(now) == 14

    later = now + timedelta(days=14)
    assert not sub.is_trial_active(later)
    assert sub.is_expired(later)
    assert sub.days_remaining(later) == 0


@pytest.mark.parametrize("elapsed", range(15))
def test_days_remaining_counts_down_through_trial(now, elapsed):
    sub = _sub(trial_started_at=now, trial_ends_at=now + timedelta(days=14))
    assert sub.days_remaining(now + timedelta(days=elapsed)) == 14 - elapsed


def test_days_remaining_never_negative(now):
    sub = _sub(status=SubscriptionStatus.ACTIVE.value, plan_duration=1, expires_at=now - timedelta(days=3))
    assert sub.days_remaining(now) == 0


def test_statuses_without_clock_count_as_expired(now):
    for status in (SubscriptionStatus.PENDING, SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED):
        sub = _sub(status=status.value, expires_at=now + timedelta(days=30))
        assert sub.is_expired(now)
        assert sub.authoritative_clock is None


def test_live_status_missing_clock_is_expired(now):
    assert _sub(status=SubscriptionStatus.ACTIVE.value).is_expired(now)
    assert _sub(status=SubscriptionStatus.TRIAL.value).is_expired(now)


def test_activate_starts_a_fresh_period(now):
    sub = _sub(trial_started_at=now, trial_ends_at=now + timedelta(days=14))
    sub.activate(3, now)

    assert sub.status == SubscriptionStatus.ACTIVE.value
    assert sub.plan_duration == 3
    assert sub.started_at == now
    assert sub.expires_at == add_months(now, 3)
    assert sub.is_premium_active(now)
    assert not sub.is_trial_active(now)


def test_extend_stacks_onto_unexpired_period(now):
    started = now - timedelta(days=10)
    current_expiry = now + timedelta(days=20)
    sub = _sub(
        status=SubscriptionStatus.ACTIVE.value,
        plan_duration=1,
        started_at=started,
        expires_at=current_expiry,
    )
    sub.extend(6, now)

    assert sub.expires_at == add_months(current_expiry, 6)
    assert sub.started_at == started
    assert sub.plan_duration == 6


def test_extend_after_expiry_behaves_like_activate(now):
    sub = _sub(
        status=SubscriptionStatus.EXPIRED.value,
        plan_duration=1,
        started_at=now - timedelta(days=60),
        expires_at=now - timedelta(days=30),
    )
    sub.extend(1, now)

    assert sub.status == SubscriptionStatus.ACTIVE.value
    assert sub.started_at == now
    assert sub.expires_at == add_months(now, 1)


def test_supersede_records_reason(now):
    sub = _sub(trial_ends_at=now + timedelta(days=5))
    sub.supersede("superseded by premium", now)

    assert sub.status == SubscriptionStatus.CANCELLED.value
    assert sub.cancelled_at == now
    assert sub.cancelled_reason == "superseded by premium"


def test_pending_block_lifecycle(now):
    sub = _sub(status=SubscriptionStatus.PENDING.value)
    sub.mark_pending_payment(
        order_code="SUB_x_1_1",
        amount=199000,
        plan_duration=1,
        checkout_url="https://pay.example/1",
        qr_url=None,
        now=now,
    )
    timeout = timedelta(minutes=15)

    assert sub.is_pending_fresh(timeout, now + timedelta(minutes=5))
    assert not sub.is_pending_fresh(timeout, now + timedelta(minutes=15))

    sub.clear_pending_payment()
    assert sub.pending_order_code is None
    assert sub.pending_plan_duration is None
    assert not sub.is_pending_fresh(timeout, now)
