# cart_engine/schemas/cart.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from cart_engine.domain.enums import CartStatus, IssueSeverity


class CartCreate(BaseModel):
    user_id: Optional[str] = Field(default=None, max_length=64)
    session_id: Optional[str] = Field(default=None, max_length=120)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class CartItemCreate(BaseModel):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int = Field(..., gt=0)
    is_gift: bool = False
    gift_message: Optional[str] = Field(default=None, max_length=500)


class CartItemUpdate(BaseModel):
    # quantity <= 0 removes the line
    quantity: Optional[int] = None
    is_gift: Optional[bool] = None
    gift_message: Optional[str] = Field(default=None, max_length=500)


class ShippingAddress(BaseModel):
    country: str = Field(..., min_length=2, max_length=2)
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None


class CouponApply(BaseModel):
    code: str = Field(..., min_length=1, max_length=40)


class CartMerge(BaseModel):
    guest_cart_id: UUID
    user_cart_id: UUID


class CartConvert(BaseModel):
    order_id: UUID


class CartItemRead(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: UUID | None
    vendor_id: UUID | None
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    currency: str
    discount_amount: Decimal
    tax_amount: Decimal
    product_name: str
    image_url: str | None
    is_available: bool
    stock_snapshot: int | None
    is_saved_for_later: bool
    is_gift: bool
    gift_message: str | None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartRead(BaseModel):
    id: UUID
    user_id: str | None
    session_id: str | None
    status: CartStatus
    currency: str

    item_count: int
    vendor_count: int
    subtotal_amount: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal

    shipping_address: dict | None
    coupon_code: str | None
    converted_order_id: UUID | None
    expires_at: datetime | None
    last_activity_at: datetime
    created_at: datetime
    version: int

    items: List[CartItemRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CartSummaryRead(BaseModel):
    cart_id: UUID
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

    model_config = ConfigDict(from_attributes=True)


class CartEstimateRead(BaseModel):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    item_count: int
    vendor_count: int

    model_config = ConfigDict(from_attributes=True)


class ValidationIssueRead(BaseModel):
    type: str
    severity: IssueSeverity
    message: str
    product_id: UUID | None = None
    product_name: str | None = None

    model_config = ConfigDict(from_attributes=True)


class CartValidationRead(BaseModel):
    cart_id: UUID
    is_valid: bool
    issues: List[ValidationIssueRead]
    estimates: CartEstimateRead | None = None

    model_config = ConfigDict(from_attributes=True)


class CleanupResult(BaseModel):
    deleted: int
