"""Boundary with the account/store side of the platform."""
from __future__ import annotations

import uuid

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.db.models.account import Account, AccountRole
from app.db.models.payment_history import PaymentHistoryRecord
from app.db.models.store import Store

logger = get_logger(__name__)


def set_premium_flag(db: Session, account_ids, value: bool) -> int:
    """Write the denormalized ``is_premium`` mirror. Does not commit."""
    ids = [account_ids] if isinstance(account_ids, uuid.UUID) else list(account_ids)
    if not ids:
        return 0
    result = db.execute(
        update(Account)
        .where(Account.id.in_(ids))
        .values(is_premium=value)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount or 0


def resolve_store_owner(db: Session, account: Account) -> uuid.UUID | None:
    """Owner account id of the store the caller currently operates in."""
    if account.current_store_id is None:
        return None
    store = db.get(Store, account.current_store_id)
    if store is None:
        logger.info("Account %s points at missing store %s", account.id, account.current_store_id)
        return None
    return store.owner_id


def usage_counts(db: Session, owner_id: uuid.UUID) -> dict[str, int]:
    """Stores, delegated staff and recorded payments of an owner."""
    store_ids = select(Store.id).where(Store.owner_id == owner_id)
    stores = db.scalar(select(func.count()).select_from(Store).where(Store.owner_id == owner_id)) or 0
    staff = db.scalar(
        select(func.count())
        .select_from(Account)
        .where(
            Account.role == AccountRole.STAFF.value,
            Account.current_store_id.in_(store_ids),
        )
    ) or 0
    payments = db.scalar(
        select(func.count()).select_from(PaymentHistoryRecord).where(PaymentHistoryRecord.owner_id == owner_id)
    ) or 0
    return {"stores": stores, "staff": staff, "payments": payments}
