"""
API dependencies (auth, entitlement gate, shared DI).

Bearer auth:
- Authorization: Bearer <jwt>, HS256 signed with JWT_SECRET
- ``sub`` is the account id
- Entitlement dependencies run after auth and before the route body
"""

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.errors import ConfigurationError
from app.core.logging import get_logger
from app.core.security import decode_token
from app.db.models.account import Account
from app.db.session import get_db
from app.services import entitlements
from app.services.payos import PayOSClient, get_payos_client

logger = get_logger(__name__)

bearer = HTTPBearer(auto_error=False)


def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    db: Session = Depends(get_db),
) -> Account:
    token = (credentials.credentials if credentials else "").strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")

    payload = decode_token(token)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    try:
        account_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None

    account = db.get(Account, account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return account


def require_entitlement(
    request: Request,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> entitlements.Decision:
    """Gate for business routers: ``dependencies=[Depends(require_entitlement)]``."""
    decision = entitlements.evaluate(db, account, request.url.path, request.method)
    if not decision.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.detail())
    request.state.entitlement = decision
    return decision


def require_premium(
    request: Request,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> entitlements.Decision:
    """Gate for hard premium-only features."""
    decision = entitlements.evaluate_premium(db, account)
    if not decision.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=decision.detail())
    request.state.entitlement = decision
    return decision


def attach_subscription_info(
    request: Request,
    response: Response,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> None:
    """Expose status and days remaining to the client; never blocks."""
    try:
        info = entitlements.subscription_info(db, account)
    except Exception:
        logger.warning("Could not compute subscription info for %s", account.id, exc_info=True)
        return
    request.state.subscription_info = info
    if info:
        response.headers["X-Subscription-Status"] = info["status"]
        response.headers["X-Subscription-Days-Remaining"] = str(info["days_remaining"])


def get_payment_client() -> PayOSClient:
    try:
        return get_payos_client()
    except ConfigurationError:
        logger.exception("Payment provider is not configured")
        raise HTTPException(status_code=500, detail="Payment provider is not configured") from None
