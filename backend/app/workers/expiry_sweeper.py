import logging
import time
from datetime import datetime, timedelta
from typing import Dict, List, Set

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.config import settings
from app.core.logging import setup_logging
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.session import session_scope
from app.services.accounts import set_premium_flag

logger = logging.getLogger("expiry_sweeper")

BATCH_SIZE = 500


def _claim(db: Session, batch_size: int, *criteria) -> List[Subscription]:
    stmt = (
        select(Subscription)
        .where(*criteria)
        .order_by(Subscription.created_at.asc())
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    return list(db.execute(stmt).scalars().all())


def _still_premium(db: Session, owner_ids: Set, now: datetime) -> Set:
    if not owner_ids:
        return set()
    rows = db.execute(
        select(Subscription.owner_id).where(
            Subscription.owner_id.in_(owner_ids),
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.expires_at > now,
        )
    ).scalars()
    return set(rows)


def sweep_batch(db: Session, now: datetime, batch_size: int = BATCH_SIZE) -> Dict[str, int]:
    """Claim and settle one batch per scan. Commits before returning."""
    stale_cutoff = now - timedelta(minutes=settings.SUBSCRIPTION_PENDING_TIMEOUT_MINUTES)

    trials = _claim(
        db,
        batch_size,
        Subscription.status == SubscriptionStatus.TRIAL.value,
        Subscription.trial_ends_at <= now,
    )
    premiums = _claim(
        db,
        batch_size,
        Subscription.status == SubscriptionStatus.ACTIVE.value,
        Subscription.expires_at <= now,
    )
    pendings = _claim(
        db,
        batch_size,
        Subscription.status == SubscriptionStatus.PENDING.value,
        Subscription.pending_created_at <= stale_cutoff,
    )

    touched = set()
    for sub in trials + premiums:
        sub.expire()
        touched.add(sub.owner_id)
    for sub in pendings:
        logger.info("voiding stale checkout %s (owner=%s)", sub.pending_order_code, sub.owner_id)
        sub.void_checkout()
    db.flush()

    # An owner can hold an expired trial next to a running premium row
    demote = touched - _still_premium(db, touched, now)
    demoted = set_premium_flag(db, demote, False) if demote else 0
    db.commit()

    return {
        "trials_expired": len(trials),
        "premiums_expired": len(premiums),
        "checkouts_voided": len(pendings),
        "accounts_demoted": demoted,
    }


def sweep(db: Session, now: datetime | None = None, batch_size: int = BATCH_SIZE) -> Dict[str, int]:
    """Drain every overdue row, batch by batch, until a pass claims nothing."""
    now = now or utcnow()
    totals = {"trials_expired": 0, "premiums_expired": 0, "checkouts_voided": 0, "accounts_demoted": 0}

    while True:
        counts = sweep_batch(db, now, batch_size)
        for key, value in counts.items():
            totals[key] += value
        claimed = counts["trials_expired"] + counts["premiums_expired"] + counts["checkouts_voided"]
        if claimed == 0:
            return totals
        logger.info("batch settled %d row(s); claiming next batch", claimed)


def main(once: bool = False) -> None:
    setup_logging(settings.LOG_LEVEL)
    interval = max(1, settings.SWEEP_INTERVAL_HOURS) * 3600
    logger.info("expiry_sweeper starting (once=%s, interval=%ss)", once, interval)

    while True:
        try:
            with session_scope() as db:
                counts = sweep(db)
            logger.info(
                "sweep done: trials=%d premiums=%d checkouts=%d demoted=%d",
                counts["trials_expired"],
                counts["premiums_expired"],
                counts["checkouts_voided"],
                counts["accounts_demoted"],
            )
        except Exception:
            logger.exception("sweep failed; will retry next interval")

        if once:
            logger.info("sweep finished; exiting (once)")
            return
        time.sleep(interval)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument("--once", action="store_true")
    args = parser.parse_args()

    main(once=args.once)
