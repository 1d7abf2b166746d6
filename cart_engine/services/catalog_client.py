from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from cart_engine.models.product import Product


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: uuid.UUID
    price: Decimal
    currency: str
    active: bool
    stock_quantity: int
    track_inventory: bool
    allow_backorders: bool
    category: str | None
    vendor_id: uuid.UUID | None
    name: str
    image_url: str | None


class CatalogLookup(Protocol):
    async def get_product(self, product_id: uuid.UUID) -> ProductSnapshot | None:
        """Return the current catalog view of a product, or None when it does not exist."""
        ...


class SqlCatalogLookup:
    """Catalog lookup backed by the shared ``products`` table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: uuid.UUID) -> ProductSnapshot | None:
        product = await self.db.get(Product, product_id)
        if product is None:
            return None
        return ProductSnapshot(
            product_id=product.id,
            price=Decimal(product.price),
            currency=product.currency,
            active=product.active,
            stock_quantity=product.stock_quantity,
            track_inventory=product.track_inventory,
            allow_backorders=product.allow_backorders,
            category=product.category,
            vendor_id=product.vendor_id,
            name=product.name,
            image_url=product.image_url,
        )
