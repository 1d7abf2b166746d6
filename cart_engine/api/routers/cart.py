from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.api.deps import (
    get_cart_or_404,
    get_catalog,
    get_coupons,
    get_pricing,
    get_validation,
)
from cart_engine.db.operations import commit_async
from cart_engine.db.session_async import get_async_db
from cart_engine.models.cart import Cart
from cart_engine.schemas.cart import (
    CartConvert,
    CartCreate,
    CartItemCreate,
    CartItemRead,
    CartItemUpdate,
    CartMerge,
    CartRead,
    CartSummaryRead,
    CartValidationRead,
    CleanupResult,
    CouponApply,
    ShippingAddress,
)
from cart_engine.schemas.pagination import PaginatedCarts, page_count
from cart_engine.services import cart_service
from cart_engine.services.cart_store import load_cart
from cart_engine.services.cart_validator import ValidationRules, validate_cart
from cart_engine.services.catalog_client import CatalogLookup
from cart_engine.services.coupon_service import CouponCatalog
from cart_engine.services.pricing import PricingRules

router = APIRouter(prefix="/carts", tags=["cart"])


@router.post("", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def create_or_get_cart(
    payload: CartCreate,
    response: Response,
    db: AsyncSession = Depends(get_async_db),
):
    cart, created = await cart_service.get_or_create_cart(
        db,
        user_id=payload.user_id,
        session_id=payload.session_id,
        currency=payload.currency,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
        return cart
    await commit_async(db)
    return cart


# --- Operaciones ---
@router.post("/merge", response_model=CartRead)
async def merge_guest_cart(payload: CartMerge, db: AsyncSession = Depends(get_async_db)):
    guest_cart = await load_cart(db, payload.guest_cart_id)
    user_cart = await load_cart(db, payload.user_cart_id)
    return await cart_service.merge_carts(db, guest_cart=guest_cart, user_cart=user_cart)


@router.get("/abandoned", response_model=PaginatedCarts)
async def list_abandoned(
    min_value: Decimal | None = Query(default=None, ge=0),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_db),
):
    carts, total = await cart_service.list_abandoned_carts(
        db, min_value=min_value, date_from=date_from, date_to=date_to, page=page, limit=limit
    )
    return PaginatedCarts(
        total=total,
        page=page,
        pages=page_count(total, limit),
        limit=limit,
        items=[CartRead.model_validate(cart) for cart in carts],
    )


@router.post("/cleanup", response_model=CleanupResult)
async def cleanup_expired(db: AsyncSession = Depends(get_async_db)):
    deleted = await cart_service.cleanup_expired_carts(db)
    await commit_async(db)
    return CleanupResult(deleted=deleted)


# --- Carrito ---
@router.get("/{cart_id}", response_model=CartRead)
async def get_cart(cart: Cart = Depends(get_cart_or_404)):
    return cart


@router.post("/{cart_id}/items", response_model=CartRead, status_code=status.HTTP_201_CREATED)
async def add_cart_item(
    item: CartItemCreate,
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    catalog: CatalogLookup = Depends(get_catalog),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.add_item(
        db,
        cart=cart,
        catalog=catalog,
        product_id=item.product_id,
        variant_id=item.variant_id,
        quantity=item.quantity,
        is_gift=item.is_gift,
        gift_message=item.gift_message,
        rules=rules,
        coupons=coupons,
    )
    await commit_async(db)
    return updated


@router.patch("/{cart_id}/items/{product_id}", response_model=CartRead)
async def update_cart_item(
    product_id: uuid.UUID,
    payload: CartItemUpdate,
    variant_id: uuid.UUID | None = Query(default=None),
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.update_item(
        db,
        cart=cart,
        product_id=product_id,
        variant_id=variant_id,
        quantity=payload.quantity,
        is_gift=payload.is_gift,
        gift_message=payload.gift_message,
        rules=rules,
        coupons=coupons,
    )
    await commit_async(db)
    return updated


@router.delete("/{cart_id}/items/{product_id}", response_model=CartRead)
async def remove_cart_item(
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = Query(default=None),
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.remove_item(
        db, cart=cart, product_id=product_id, variant_id=variant_id, rules=rules, coupons=coupons
    )
    await commit_async(db)
    return updated


@router.delete("/{cart_id}/items", response_model=CartRead)
async def clear_cart(
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.clear_cart(db, cart=cart, rules=rules, coupons=coupons)
    await commit_async(db)
    return updated


@router.post("/{cart_id}/items/{product_id}/save-for-later", response_model=CartRead)
async def save_item_for_later(
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = Query(default=None),
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.save_for_later(
        db, cart=cart, product_id=product_id, variant_id=variant_id, rules=rules, coupons=coupons
    )
    await commit_async(db)
    return updated


@router.post("/{cart_id}/items/{product_id}/move-to-cart", response_model=CartRead)
async def move_item_to_cart(
    product_id: uuid.UUID,
    variant_id: uuid.UUID | None = Query(default=None),
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.move_to_cart(
        db, cart=cart, product_id=product_id, variant_id=variant_id, rules=rules, coupons=coupons
    )
    await commit_async(db)
    return updated


@router.get("/{cart_id}/saved-items", response_model=list[CartItemRead])
async def list_saved_items(cart: Cart = Depends(get_cart_or_404)):
    return cart_service.list_saved_items(cart)


@router.put("/{cart_id}/shipping-address", response_model=CartRead)
async def set_shipping_address(
    payload: ShippingAddress,
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.set_shipping_address(
        db,
        cart=cart,
        address=payload.model_dump(exclude_none=True),
        rules=rules,
        coupons=coupons,
    )
    await commit_async(db)
    return updated


# --- Cupones ---
@router.post("/{cart_id}/coupon", response_model=CartRead)
async def apply_coupon(
    payload: CouponApply,
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.apply_coupon(
        db, cart=cart, code=payload.code, rules=rules, coupons=coupons
    )
    await commit_async(db)
    return updated


@router.delete("/{cart_id}/coupon", response_model=CartRead)
async def remove_coupon(
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
    rules: PricingRules = Depends(get_pricing),
    coupons: CouponCatalog = Depends(get_coupons),
):
    updated = await cart_service.remove_coupon(db, cart=cart, rules=rules, coupons=coupons)
    await commit_async(db)
    return updated


# --- Checkout ---
@router.get("/{cart_id}/summary", response_model=CartSummaryRead)
async def get_summary(
    cart: Cart = Depends(get_cart_or_404),
    rules: PricingRules = Depends(get_pricing),
):
    return CartSummaryRead.model_validate(cart_service.get_cart_summary(cart, rules))


@router.post(
    "/{cart_id}/validate",
    response_model=CartValidationRead,
    responses={400: {"model": CartValidationRead, "description": "Cart has blocking issues"}},
)
async def validate(
    cart: Cart = Depends(get_cart_or_404),
    catalog: CatalogLookup = Depends(get_catalog),
    rules: ValidationRules = Depends(get_validation),
    pricing_rules: PricingRules = Depends(get_pricing),
):
    report = await validate_cart(cart, catalog=catalog, rules=rules, pricing_rules=pricing_rules)
    body = CartValidationRead.model_validate(report)
    if not report.is_valid:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))
    return body


@router.post("/{cart_id}/convert", response_model=CartRead)
async def convert_to_order(
    payload: CartConvert,
    cart: Cart = Depends(get_cart_or_404),
    db: AsyncSession = Depends(get_async_db),
):
    updated = await cart_service.convert_to_order(db, cart=cart, order_id=payload.order_id)
    await commit_async(db)
    return updated
