"""Persistence of the Cart aggregate (cart row plus its items)."""

from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from cart_engine.core.logging import get_logger
from cart_engine.db.operations import flush_async, refresh_async
from cart_engine.domain.enums import CartStatus
from cart_engine.models.cart import Cart
from cart_engine.services.exceptions import CartNotFoundError, StaleCartError

logger = get_logger(__name__)


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise CartNotFoundError("Cart not found") from exc


async def load_cart(db: AsyncSession, cart_id: uuid.UUID | str) -> Cart:
    cart = await db.get(Cart, _as_uuid(cart_id), options=[selectinload(Cart.items)])
    if cart is None:
        raise CartNotFoundError("Cart not found")
    return cart


async def find_active_cart(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    session_id: str | None = None,
) -> Cart | None:
    stmt = select(Cart).options(selectinload(Cart.items)).where(Cart.status == CartStatus.active)
    if user_id:
        stmt = stmt.where(Cart.user_id == user_id)
    elif session_id:
        stmt = stmt.where(Cart.session_id == session_id)
    else:
        return None

    stmt = stmt.order_by(Cart.created_at.desc()).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def save_cart(db: AsyncSession, cart: Cart) -> Cart:
    """Write the cart row and its item list in one flush."""
    db.add(cart)
    try:
        await flush_async(db)
    except StaleDataError as exc:
        logger.warning("Rejected stale cart write", extra={"cart_id": str(cart.id)})
        raise StaleCartError("Cart was modified by another request; reload and retry") from exc
    await refresh_async(db, cart, attribute_names=["items"])
    return cart


async def delete_cart(db: AsyncSession, cart: Cart) -> None:
    await db.delete(cart)
    await flush_async(db)
