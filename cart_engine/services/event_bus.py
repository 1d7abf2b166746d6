from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from cart_engine.core.celery_app import celery_app
from cart_engine.core.config import settings
from cart_engine.core.logging import get_logger
from cart_engine import tasks  # noqa: F401  registers events.cart

logger = get_logger(__name__)

_PENDING_KEY = "pending_cart_events"


def publish_cart_event(name: str, payload: dict[str, Any]) -> None:
    """Publish a cart event through the message broker.

    Publishing is best effort: a broker or task failure is logged and never
    propagates into the cart mutation that triggered it.
    """
    task = celery_app.tasks.get("events.cart")
    if task is None:
        logger.warning("Cart event task not registered", extra={"event": name})
        return
    try:
        task.apply_async((name, payload), queue=settings.CART_EVENTS_QUEUE, ignore_result=True)
    except Exception:
        logger.exception("Failed to publish cart event", extra={"event": name})


def emit_cart_event(db: AsyncSession, name: str, payload: dict[str, Any]) -> None:
    """Queue a cart event on ``db``; it is published once the session commits."""
    db.sync_session.info.setdefault(_PENDING_KEY, []).append((name, payload))


@event.listens_for(Session, "after_commit")
def _publish_pending(session: Session) -> None:
    for name, payload in session.info.pop(_PENDING_KEY, []):
        publish_cart_event(name, payload)


@event.listens_for(Session, "after_rollback")
def _discard_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, None)
    if pending:
        logger.info("Cart events discarded after rollback", extra={"events": len(pending)})
