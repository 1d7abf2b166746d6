from pydantic import BaseModel
from typing import List
from cart_engine.schemas.abandonment import AbandonmentTrackingRead
from cart_engine.schemas.cart import CartRead


def page_count(total: int, limit: int) -> int:
    return (total + limit - 1) // limit if limit else 0


class PaginatedCarts(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
    items: List[CartRead]


class PaginatedAbandonmentTracking(BaseModel):
    total: int
    page: int
    pages: int
    limit: int
    items: List[AbandonmentTrackingRead]
