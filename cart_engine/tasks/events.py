from __future__ import annotations

from cart_engine.core.celery_app import celery_app
from cart_engine.core.logging import get_logger

logger = get_logger(__name__)


@celery_app.task(name="events.cart", ignore_result=True)
def handle_cart_event(event_name: str, payload: dict) -> None:
    """Dispatch cart domain events to downstream adapters."""
    logger.info("Cart event received", extra={"event": event_name, "payload": payload})
