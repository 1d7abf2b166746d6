# cart_engine/api/deps.py
import uuid

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.db.session_async import get_async_db
from cart_engine.models.cart import Cart
from cart_engine.services.cart_store import load_cart
from cart_engine.services.cart_validator import ValidationRules, get_validation_rules
from cart_engine.services.catalog_client import CatalogLookup, SqlCatalogLookup
from cart_engine.services.coupon_service import CouponCatalog, get_coupon_catalog
from cart_engine.services.pricing import PricingRules, get_pricing_rules


def get_catalog(db: AsyncSession = Depends(get_async_db)) -> CatalogLookup:
    return SqlCatalogLookup(db)


def get_pricing() -> PricingRules:
    return get_pricing_rules()


def get_coupons() -> CouponCatalog:
    return get_coupon_catalog()


def get_validation() -> ValidationRules:
    return get_validation_rules()


async def get_cart_or_404(cart_id: uuid.UUID, db: AsyncSession = Depends(get_async_db)) -> Cart:
    """Path dependency: load the cart addressed by ``cart_id`` or raise CartNotFoundError."""
    return await load_cart(db, cart_id)
