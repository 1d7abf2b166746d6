from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from decimal import Decimal
from typing import Any

from cart_engine.core.config import Settings, settings
from cart_engine.domain.enums import DiscountType
from cart_engine.services.exceptions import (
    CouponNotFoundError,
    InvalidCouponError,
    MinimumOrderNotMetError,
)
from cart_engine.services.pricing import ZERO, to_money


@dataclass(frozen=True)
class CouponRule:
    code: str
    discount_type: DiscountType
    value: Decimal
    min_order: Decimal = ZERO
    max_discount: Decimal | None = None
    is_active: bool = True

    @classmethod
    def from_mapping(cls, code: str, data: Mapping[str, Any]) -> "CouponRule":
        max_discount = data.get("max_discount")
        return cls(
            code=code.upper(),
            discount_type=DiscountType(data["discount_type"]),
            value=Decimal(str(data["value"])),
            min_order=Decimal(str(data.get("min_order", "0"))),
            max_discount=Decimal(str(max_discount)) if max_discount is not None else None,
            is_active=bool(data.get("is_active", True)),
        )


class CouponCatalog:
    """Static coupon rule table keyed by upper-cased code."""

    def __init__(self, rules: Mapping[str, CouponRule]):
        self._rules = {code.upper(): rule for code, rule in rules.items()}

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "CouponCatalog":
        return cls(
            {code: CouponRule.from_mapping(code, data) for code, data in config.COUPONS.items()}
        )

    def get(self, code: str) -> CouponRule | None:
        return self._rules.get(code.strip().upper())


def calculate_discount(rule: CouponRule, subtotal: Decimal) -> Decimal:
    if rule.discount_type == DiscountType.percentage:
        discount = to_money(subtotal * rule.value)
        if rule.max_discount is not None and discount > rule.max_discount:
            discount = to_money(rule.max_discount)
        return discount
    return to_money(min(rule.value, subtotal))


def evaluate_coupon(code: str, subtotal: Decimal, catalog: CouponCatalog) -> tuple[CouponRule, Decimal]:
    """Validate ``code`` against ``subtotal`` and return the rule with its discount."""
    rule = catalog.get(code)
    if rule is None:
        raise CouponNotFoundError(f"Coupon code '{code}' not found")
    if not rule.is_active:
        raise InvalidCouponError(f"Coupon code '{code}' is expired or inactive")
    if subtotal < rule.min_order:
        raise MinimumOrderNotMetError(
            f"Minimum order amount of {to_money(rule.min_order)} required for coupon '{rule.code}'"
        )
    return rule, calculate_discount(rule, subtotal)


@lru_cache
def get_coupon_catalog() -> CouponCatalog:
    return CouponCatalog.from_settings()
