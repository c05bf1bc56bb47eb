"""Payment provider webhooks. Unauthenticated; trust comes from the body signature."""
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.errors import ConfigurationError, WebhookRejected
from app.core.logging import get_logger
from app.db.session import get_db
from app.services.payos import SIGNATURE_HEADER
from app.services.webhooks import process_subscription_webhook

logger = get_logger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["webhooks"])


@router.post("/webhook")
async def subscription_webhook(request: Request, db: Session = Depends(get_db)):
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    try:
        outcome = process_subscription_webhook(db, payload, signature)
    except WebhookRejected as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from None
    except ConfigurationError:
        logger.error("Subscription webhook received but PAYOS_CHECKSUM_KEY is not set")
        raise HTTPException(status_code=500, detail="Webhook secret not configured") from None

    return outcome.body()
