from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.core.config import settings
from cart_engine.core.logging import get_logger
from cart_engine.core.metrics import record_cart_mutation, record_coupon_outcome
from cart_engine.db.session_async import commit, rollback
from cart_engine.domain.enums import CartStatus
from cart_engine.models.cart import Cart, CartItem
from cart_engine.services import abandonment_service
from cart_engine.services.cart_store import delete_cart, find_active_cart, save_cart
from cart_engine.services.catalog_client import CatalogLookup
from cart_engine.services.coupon_service import (
    CouponCatalog,
    evaluate_coupon,
    get_coupon_catalog,
)
from cart_engine.services.event_bus import emit_cart_event
from cart_engine.services.exceptions import (
    CartItemNotFoundError,
    CartNotActiveError,
    DomainValidationError,
    InvalidCouponError,
    InvalidQuantityError,
    MinimumOrderNotMetError,
    ProductNotFoundError,
    ServiceError,
    TransactionFailureError,
)
from cart_engine.services.pricing import (
    ZERO,
    PricingRules,
    compute_tax,
    get_pricing_rules,
    price_cart,
)

logger = get_logger(__name__)

_CONVERTIBLE_STATUSES = (CartStatus.active, CartStatus.abandoned)


@dataclass(frozen=True)
class CartSummary:
    cart_id: uuid.UUID
    subtotal_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    item_count: int
    vendor_count: int
    currency: str
    coupon_code: str | None
    estimated_tax: Decimal


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_mutable(cart: Cart) -> None:
    if cart.status != CartStatus.active:
        raise CartNotActiveError(f"Cart is {cart.status.value} and can no longer be modified")


def _find_item(cart: Cart, product_id: uuid.UUID, variant_id: uuid.UUID | None = None) -> CartItem:
    for item in cart.items:
        if item.key == (product_id, variant_id):
            return item
    raise CartItemNotFoundError("Item not found in cart")


def _reprice(cart: Cart, rules: PricingRules, coupons: CouponCatalog) -> None:
    """Run the pricing engine and keep the applied coupon consistent with the new subtotal."""
    totals = price_cart(cart, rules)
    if not cart.coupon_code or not settings.COUPON_REVALIDATE_ON_MUTATION:
        return

    try:
        _, discount = evaluate_coupon(cart.coupon_code, totals.subtotal, coupons)
    except (InvalidCouponError, MinimumOrderNotMetError) as exc:
        logger.info(
            "Coupon dropped after cart change",
            extra={"cart_id": str(cart.id), "coupon_code": cart.coupon_code, "reason": exc.detail},
        )
        cart.coupon_code = None
        discount = ZERO
    if discount != totals.discount:
        cart.discount_amount = discount
        price_cart(cart, rules)


async def _persist_mutation(
    db: AsyncSession,
    cart: Cart,
    operation: str,
    *,
    rules: PricingRules | None,
    coupons: CouponCatalog | None,
) -> Cart:
    _reprice(cart, rules or get_pricing_rules(), coupons or get_coupon_catalog())
    cart.last_activity_at = _now()
    await save_cart(db, cart)
    record_cart_mutation(operation)
    return cart


async def create_cart(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    session_id: str | None = None,
    currency: str | None = None,
) -> Cart:
    if not user_id and not session_id:
        raise DomainValidationError("Either user_id or session_id is required")

    now = _now()
    cart = Cart(
        user_id=user_id,
        session_id=None if user_id else session_id,
        status=CartStatus.active,
        currency=(currency or settings.CART_CURRENCY).upper(),
        item_count=0,
        vendor_count=0,
        subtotal_amount=ZERO,
        tax_amount=ZERO,
        shipping_amount=ZERO,
        discount_amount=ZERO,
        total_amount=ZERO,
        last_activity_at=now,
    )
    if not user_id:
        cart.expires_at = now + timedelta(days=settings.GUEST_CART_TTL_DAYS)

    await save_cart(db, cart)
    logger.info("Cart created", extra={"cart_id": str(cart.id), "guest": user_id is None})
    return cart


async def get_or_create_cart(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    session_id: str | None = None,
    currency: str | None = None,
) -> tuple[Cart, bool]:
    """Return the owner's active cart, creating one on a miss. The flag tells whether it was created."""
    if not user_id and not session_id:
        raise DomainValidationError("Either user_id or session_id is required")

    cart = None
    if user_id:
        cart = await find_active_cart(db, user_id=user_id)
    if cart is None and session_id:
        cart = await find_active_cart(db, session_id=session_id)
    if cart is not None:
        return cart, False

    cart = await create_cart(db, user_id=user_id, session_id=session_id, currency=currency)
    return cart, True


async def add_item(
    db: AsyncSession,
    *,
    cart: Cart,
    catalog: CatalogLookup,
    product_id: uuid.UUID,
    quantity: int,
    variant_id: uuid.UUID | None = None,
    is_gift: bool = False,
    gift_message: str | None = None,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    if quantity <= 0:
        raise InvalidQuantityError("Quantity must be greater than zero")
    _ensure_mutable(cart)

    product = await catalog.get_product(product_id)
    if product is None:
        raise ProductNotFoundError("Product not found")
    if not product.active:
        raise DomainValidationError("Product is not available")

    try:
        item = _find_item(cart, product_id, variant_id)
    except CartItemNotFoundError:
        item = None

    if item is not None:
        item.quantity += quantity
        item.is_gift = is_gift
        item.gift_message = gift_message
    else:
        item = CartItem(
            product_id=product_id,
            variant_id=variant_id,
            quantity=quantity,
            currency=cart.currency,
            is_gift=is_gift,
            gift_message=gift_message,
            is_saved_for_later=False,
            discount_amount=ZERO,
            tax_amount=ZERO,
        )
        cart.items.append(item)

    # Refresh the display snapshot from the catalog read made for this mutation.
    item.vendor_id = product.vendor_id
    item.unit_price = product.price
    item.line_total = product.price * item.quantity
    item.product_name = product.name
    item.image_url = product.image_url
    item.is_available = product.active
    item.stock_snapshot = product.stock_quantity

    await _persist_mutation(db, cart, "add_item", rules=rules, coupons=coupons)
    logger.info(
        "Item added to cart",
        extra={"cart_id": str(cart.id), "product_id": str(product_id), "quantity": quantity},
    )
    emit_cart_event(
        db,
        "cart_item_added",
        {"cart_id": str(cart.id), "product_id": str(product_id), "quantity": quantity},
    )
    return cart


async def update_item(
    db: AsyncSession,
    *,
    cart: Cart,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = None,
    quantity: int | None = None,
    is_gift: bool | None = None,
    gift_message: str | None = None,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    item = _find_item(cart, product_id, variant_id)

    if quantity is not None:
        if quantity <= 0:
            return await remove_item(
                db, cart=cart, product_id=product_id, variant_id=variant_id, rules=rules, coupons=coupons
            )
        item.quantity = quantity
    if is_gift is not None:
        item.is_gift = is_gift
    if gift_message is not None:
        item.gift_message = gift_message

    return await _persist_mutation(db, cart, "update_item", rules=rules, coupons=coupons)


async def remove_item(
    db: AsyncSession,
    *,
    cart: Cart,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = None,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    item = _find_item(cart, product_id, variant_id)
    cart.items.remove(item)
    return await _persist_mutation(db, cart, "remove_item", rules=rules, coupons=coupons)


async def clear_cart(
    db: AsyncSession,
    *,
    cart: Cart,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    cart.items.clear()
    cart.coupon_code = None
    cart.discount_amount = ZERO
    return await _persist_mutation(db, cart, "clear", rules=rules, coupons=coupons)


async def merge_carts(
    db: AsyncSession,
    *,
    guest_cart: Cart,
    user_cart: Cart,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    """Fold ``guest_cart`` into ``user_cart`` and delete the guest cart.

    Runs as a single transaction that is committed here: either the user
    cart is updated and the guest cart deleted, or nothing is persisted and
    :class:`TransactionFailureError` tells the caller to retry.
    """
    if guest_cart.id == user_cart.id:
        raise DomainValidationError("Cannot merge a cart into itself")
    _ensure_mutable(guest_cart)
    _ensure_mutable(user_cart)

    for guest_item in guest_cart.items:
        try:
            target = _find_item(user_cart, guest_item.product_id, guest_item.variant_id)
        except CartItemNotFoundError:
            target = None

        if target is not None:
            target.quantity += guest_item.quantity
            continue

        user_cart.items.append(
            CartItem(
                product_id=guest_item.product_id,
                variant_id=guest_item.variant_id,
                vendor_id=guest_item.vendor_id,
                quantity=guest_item.quantity,
                unit_price=guest_item.unit_price,
                line_total=guest_item.line_total,
                currency=guest_item.currency,
                discount_amount=ZERO,
                tax_amount=ZERO,
                product_name=guest_item.product_name,
                image_url=guest_item.image_url,
                is_available=guest_item.is_available,
                stock_snapshot=guest_item.stock_snapshot,
                is_saved_for_later=guest_item.is_saved_for_later,
                is_gift=guest_item.is_gift,
                gift_message=guest_item.gift_message,
            )
        )

    if guest_cart.session_id and not user_cart.session_id:
        user_cart.session_id = guest_cart.session_id
    if user_cart.shipping_address is None and guest_cart.shipping_address:
        user_cart.shipping_address = dict(guest_cart.shipping_address)

    guest_cart_id, user_cart_id = guest_cart.id, user_cart.id
    try:
        await _persist_mutation(db, user_cart, "merge", rules=rules, coupons=coupons)
        await delete_cart(db, guest_cart)
        await commit(db)
    except ServiceError:
        await rollback(db)
        raise
    except SQLAlchemyError as exc:
        await rollback(db)
        logger.error(
            "Cart merge rolled back",
            extra={"guest_cart_id": str(guest_cart_id), "user_cart_id": str(user_cart_id)},
        )
        raise TransactionFailureError("Cart merge failed; no changes were applied, retry the merge") from exc

    logger.info("Guest cart merged", extra={"guest_cart_id": str(guest_cart_id), "user_cart_id": str(user_cart_id)})
    return user_cart


async def convert_to_order(db: AsyncSession, *, cart: Cart, order_id: uuid.UUID) -> Cart:
    """Mark the cart as converted into ``order_id``. Converted carts are frozen.

    Carts flagged as abandoned by the sweep can still be converted, which is
    how a recovery campaign closes out its tracking row.
    """
    if cart.status not in _CONVERTIBLE_STATUSES:
        raise CartNotActiveError(f"Cart is {cart.status.value} and cannot be converted")
    cart.status = CartStatus.converted
    cart.converted_order_id = order_id
    cart.last_activity_at = _now()
    await save_cart(db, cart)
    await abandonment_service.mark_recovered(db, cart_id=cart.id, order_id=order_id, missing_ok=True)
    record_cart_mutation("convert")
    logger.info("Cart converted to order", extra={"cart_id": str(cart.id), "order_id": str(order_id)})
    emit_cart_event(db, "cart_converted", {"cart_id": str(cart.id), "order_id": str(order_id)})
    return cart


async def apply_coupon(
    db: AsyncSession,
    *,
    cart: Cart,
    code: str,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    coupons = coupons or get_coupon_catalog()
    try:
        rule, discount = evaluate_coupon(code, cart.subtotal_amount, coupons)
    except ServiceError:
        record_coupon_outcome("rejected")
        raise

    cart.coupon_code = rule.code
    cart.discount_amount = discount
    await _persist_mutation(db, cart, "apply_coupon", rules=rules, coupons=coupons)
    record_coupon_outcome("applied")
    logger.info("Coupon applied", extra={"cart_id": str(cart.id), "coupon_code": rule.code, "discount": str(discount)})
    return cart


async def remove_coupon(
    db: AsyncSession,
    *,
    cart: Cart,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    cart.coupon_code = None
    cart.discount_amount = ZERO
    return await _persist_mutation(db, cart, "remove_coupon", rules=rules, coupons=coupons)


async def set_shipping_address(
    db: AsyncSession,
    *,
    cart: Cart,
    address: dict,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    address = dict(address)
    if address.get("country"):
        address["country"] = str(address["country"]).upper()
    cart.shipping_address = address
    return await _persist_mutation(db, cart, "set_shipping_address", rules=rules, coupons=coupons)


async def save_for_later(
    db: AsyncSession,
    *,
    cart: Cart,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = None,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    _find_item(cart, product_id, variant_id).is_saved_for_later = True
    return await _persist_mutation(db, cart, "save_for_later", rules=rules, coupons=coupons)


async def move_to_cart(
    db: AsyncSession,
    *,
    cart: Cart,
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = None,
    rules: PricingRules | None = None,
    coupons: CouponCatalog | None = None,
) -> Cart:
    _ensure_mutable(cart)
    _find_item(cart, product_id, variant_id).is_saved_for_later = False
    return await _persist_mutation(db, cart, "move_to_cart", rules=rules, coupons=coupons)


def list_saved_items(cart: Cart) -> list[CartItem]:
    return [item for item in cart.items if item.is_saved_for_later]


def get_cart_summary(cart: Cart, rules: PricingRules | None = None) -> CartSummary:
    rules = rules or get_pricing_rules()
    return CartSummary(
        cart_id=cart.id,
        subtotal_amount=cart.subtotal_amount,
        tax_amount=cart.tax_amount,
        shipping_amount=cart.shipping_amount,
        discount_amount=cart.discount_amount,
        total_amount=cart.total_amount,
        item_count=cart.item_count,
        vendor_count=cart.vendor_count,
        currency=cart.currency,
        coupon_code=cart.coupon_code,
        estimated_tax=compute_tax(cart.subtotal_amount, cart.destination_country, rules),
    )


async def list_abandoned_carts(
    db: AsyncSession,
    *,
    min_value: Decimal | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Cart], int]:
    stmt = select(Cart).where(Cart.status == CartStatus.abandoned)
    if min_value is not None:
        stmt = stmt.where(Cart.total_amount >= min_value)
    if date_from is not None:
        stmt = stmt.where(Cart.last_activity_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(Cart.last_activity_at <= date_to)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    result = await db.execute(
        stmt.order_by(Cart.last_activity_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total


async def cleanup_expired_carts(db: AsyncSession, *, now: datetime | None = None) -> int:
    """Delete expired carts and guest carts idle past the stale window. Converted carts are kept."""
    now = now or _now()
    stale_cutoff = now - timedelta(days=settings.STALE_GUEST_CART_DAYS)
    result = await db.execute(
        select(Cart).where(
            Cart.status != CartStatus.converted,
            or_(
                and_(Cart.expires_at.is_not(None), Cart.expires_at < now),
                and_(Cart.user_id.is_(None), Cart.last_activity_at < stale_cutoff),
            ),
        )
    )
    carts = list(result.scalars().all())
    for cart in carts:
        await db.delete(cart)
    await db.flush()
    logger.info("Expired carts cleaned up", extra={"deleted": len(carts)})
    return len(carts)
