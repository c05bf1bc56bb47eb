"""Activation notifications: real-time fan-out plus a durable in-app record.

Both paths are best-effort. A failure here is logged and swallowed so that an
already-committed activation is never undone.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List

from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.db.models.notification import Notification

logger = get_logger(__name__)

EventListener = Callable[[str, Dict[str, Any]], None]

SUBSCRIPTION_ACTIVATED = "subscription_activated"

_listeners: List[EventListener] = []


def add_listener(listener: EventListener) -> None:
    """Register a real-time sink (socket gateway, push bridge...)."""
    _listeners.append(listener)


def remove_listener(listener: EventListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def publish(event: str, payload: Dict[str, Any]) -> None:
    for listener in list(_listeners):
        try:
            listener(event, payload)
        except Exception:
            logger.warning("Event listener failed for %s", event, exc_info=True)


def activation_message(display_name: str, plan_duration: int, expires_at: datetime | None) -> str:
    expires_text = expires_at.strftime("%d/%m/%Y") if expires_at else "unknown"
    return f"{display_name} activated the Premium {plan_duration}-month plan (expires {expires_text})"


def notify_activation(
    db: Session,
    *,
    owner_id: uuid.UUID,
    display_name: str,
    plan_duration: int,
    expires_at: datetime | None,
) -> None:
    message = activation_message(display_name, plan_duration, expires_at)

    publish(
        SUBSCRIPTION_ACTIVATED,
        {
            "userId": str(owner_id),
            "duration": plan_duration,
            "expiresAt": expires_at.isoformat() if expires_at else None,
            "message": message,
        },
    )

    try:
        db.add(
            Notification(
                user_id=owner_id,
                type="service",
                title="Subscription activated",
                message=message,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.warning("Could not store activation notification for owner %s", owner_id, exc_info=True)
