"""Abandonment bookkeeping for recovery campaigns.

The tracker only records signals. It never changes ``Cart.status``; the
abandoned / expired transitions belong to the scheduled sweeps that call
into :mod:`cart_engine.services.cart_service`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.core.logging import get_logger
from cart_engine.db.operations import flush_async, refresh_async
from cart_engine.domain.enums import AbandonmentStage
from cart_engine.models.cart import CartAbandonmentTracking
from cart_engine.services.exceptions import ConflictError, ResourceNotFoundError

logger = get_logger(__name__)


async def get_tracking(db: AsyncSession, cart_id: uuid.UUID) -> CartAbandonmentTracking | None:
    result = await db.execute(
        select(CartAbandonmentTracking).where(CartAbandonmentTracking.cart_id == cart_id)
    )
    return result.scalar_one_or_none()


async def _require_tracking(db: AsyncSession, cart_id: uuid.UUID) -> CartAbandonmentTracking:
    tracking = await get_tracking(db, cart_id)
    if tracking is None:
        raise ResourceNotFoundError("Abandonment tracking not found")
    return tracking


async def track_abandonment(
    db: AsyncSession,
    *,
    cart_id: uuid.UUID,
    stage: AbandonmentStage,
    last_page: str | None = None,
) -> CartAbandonmentTracking:
    """Upsert the tracking row of ``cart_id``: update stage/page in place or create it."""
    tracking = await get_tracking(db, cart_id)
    if tracking is not None:
        tracking.stage = AbandonmentStage(stage)
        tracking.last_page_visited = last_page
    else:
        tracking = CartAbandonmentTracking(
            cart_id=cart_id,
            stage=AbandonmentStage(stage),
            last_page_visited=last_page,
            abandoned_at=datetime.now(timezone.utc),
            emails_sent=0,
            recovery_clicks=0,
            is_recovered=False,
        )
        db.add(tracking)
        logger.info("Cart abandonment tracked", extra={"cart_id": str(cart_id), "stage": tracking.stage.value})

    await flush_async(db)
    await refresh_async(db, tracking)
    return tracking


async def create_abandonment_tracking(
    db: AsyncSession,
    *,
    cart_id: uuid.UUID,
    stage: AbandonmentStage,
    last_page: str | None = None,
) -> CartAbandonmentTracking:
    if await get_tracking(db, cart_id) is not None:
        raise ConflictError("Abandonment tracking already exists for this cart")
    return await track_abandonment(db, cart_id=cart_id, stage=stage, last_page=last_page)


async def mark_recovered(
    db: AsyncSession,
    *,
    cart_id: uuid.UUID,
    order_id: uuid.UUID,
    missing_ok: bool = False,
) -> CartAbandonmentTracking | None:
    tracking = await get_tracking(db, cart_id)
    if tracking is None:
        if missing_ok:
            return None
        raise ResourceNotFoundError("Abandonment tracking not found")

    tracking.is_recovered = True
    tracking.recovered_at = datetime.now(timezone.utc)
    tracking.recovered_order_id = order_id
    await flush_async(db)
    await refresh_async(db, tracking)
    logger.info("Abandoned cart recovered", extra={"cart_id": str(cart_id), "order_id": str(order_id)})
    return tracking


async def record_recovery_email(db: AsyncSession, *, cart_id: uuid.UUID) -> CartAbandonmentTracking:
    tracking = await _require_tracking(db, cart_id)
    tracking.emails_sent += 1
    tracking.last_email_sent_at = datetime.now(timezone.utc)
    await flush_async(db)
    await refresh_async(db, tracking)
    return tracking


async def record_recovery_click(db: AsyncSession, *, cart_id: uuid.UUID) -> CartAbandonmentTracking:
    tracking = await _require_tracking(db, cart_id)
    tracking.recovery_clicks += 1
    await flush_async(db)
    await refresh_async(db, tracking)
    return tracking


async def get_unrecovered(
    db: AsyncSession,
    *,
    older_than: datetime,
    limit: int | None = None,
) -> list[CartAbandonmentTracking]:
    """Rows still waiting for recovery that were abandoned before ``older_than``."""
    stmt = (
        select(CartAbandonmentTracking)
        .where(
            CartAbandonmentTracking.is_recovered.is_(False),
            CartAbandonmentTracking.abandoned_at < older_than,
        )
        .order_by(CartAbandonmentTracking.abandoned_at.asc())
    )
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def list_abandonment_analytics(
    db: AsyncSession,
    *,
    stage: AbandonmentStage | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    is_recovered: bool | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[CartAbandonmentTracking], int]:
    stmt = select(CartAbandonmentTracking)
    if stage is not None:
        stmt = stmt.where(CartAbandonmentTracking.stage == AbandonmentStage(stage))
    if date_from is not None:
        stmt = stmt.where(CartAbandonmentTracking.abandoned_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(CartAbandonmentTracking.abandoned_at <= date_to)
    if is_recovered is not None:
        stmt = stmt.where(CartAbandonmentTracking.is_recovered.is_(is_recovered))

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await db.execute(
        stmt.order_by(CartAbandonmentTracking.abandoned_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total
