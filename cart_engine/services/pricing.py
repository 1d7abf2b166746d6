"""Deterministic cart pricing: subtotal, tax, shipping and total.

Everything in this module is pure. Rate tables arrive through
:class:`PricingRules` so deployments and tests can swap them without
touching the code.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from cart_engine.core.config import Settings, settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Quantize any numeric input to cents, never passing through float."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingRules:
    tax_rates: Mapping[str, Decimal] = field(default_factory=dict)
    default_tax_rate: Decimal = Decimal("0.05")
    shipping_rates: Mapping[str, Decimal] = field(default_factory=dict)
    default_shipping_rate: Decimal = Decimal("8.00")
    free_shipping_threshold: Decimal = Decimal("100.00")
    multi_vendor_surcharge_rate: Decimal = Decimal("0.5")
    bulk_item_threshold: int = 5
    bulk_surcharge_per_unit: Decimal = Decimal("0.50")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "PricingRules":
        return cls(
            tax_rates=dict(config.TAX_RATES),
            default_tax_rate=config.DEFAULT_TAX_RATE,
            shipping_rates=dict(config.SHIPPING_RATES),
            default_shipping_rate=config.DEFAULT_SHIPPING_RATE,
            free_shipping_threshold=config.FREE_SHIPPING_THRESHOLD,
            multi_vendor_surcharge_rate=config.MULTI_VENDOR_SURCHARGE_RATE,
            bulk_item_threshold=config.BULK_ITEM_THRESHOLD,
            bulk_surcharge_per_unit=config.BULK_SURCHARGE_PER_UNIT,
        )

    def tax_rate(self, country: str | None) -> Decimal:
        if not country:
            return self.default_tax_rate
        return self.tax_rates.get(country.upper(), self.default_tax_rate)

    def base_shipping_rate(self, country: str | None) -> Decimal:
        if not country:
            return self.default_shipping_rate
        return self.shipping_rates.get(country.upper(), self.default_shipping_rate)


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    item_count: int
    vendor_count: int


def compute_tax(subtotal: Decimal, country: str | None, rules: PricingRules) -> Decimal:
    if subtotal <= ZERO:
        return ZERO
    return to_money(subtotal * rules.tax_rate(country))


def compute_shipping(
    subtotal: Decimal,
    country: str | None,
    *,
    vendor_count: int,
    item_count: int,
    rules: PricingRules,
) -> Decimal:
    # Empty carts ship nothing; the free-shipping boundary is inclusive.
    if subtotal <= ZERO or subtotal >= rules.free_shipping_threshold:
        return ZERO

    base = rules.base_shipping_rate(country)
    shipping = base

    extra_vendors = max(vendor_count, 1) - 1
    if extra_vendors:
        shipping += base * rules.multi_vendor_surcharge_rate * extra_vendors

    extra_units = item_count - rules.bulk_item_threshold
    if extra_units > 0:
        shipping += rules.bulk_surcharge_per_unit * extra_units

    return to_money(shipping)


def compute_totals(
    line_totals: Iterable[Decimal],
    *,
    country: str | None,
    discount: Decimal,
    vendor_count: int,
    item_count: int,
    rules: PricingRules,
) -> CartTotals:
    """Price a cart snapshot. Identical inputs always produce identical totals."""
    subtotal = to_money(sum((Decimal(total) for total in line_totals), ZERO))
    discount = to_money(discount)
    tax = compute_tax(subtotal, country, rules)
    shipping = compute_shipping(
        subtotal, country, vendor_count=vendor_count, item_count=item_count, rules=rules
    )
    total = subtotal + tax + shipping - discount
    return CartTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=total,
        item_count=item_count,
        vendor_count=vendor_count,
    )


def allocate(amount: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """Split ``amount`` across ``weights`` proportionally; the last share absorbs rounding."""
    if not weights:
        return []
    amount = to_money(amount)
    weight_sum = sum(weights, ZERO)
    if weight_sum <= ZERO or amount == ZERO:
        return [ZERO for _ in weights]

    shares: list[Decimal] = []
    allocated = ZERO
    for weight in weights[:-1]:
        share = to_money(amount * weight / weight_sum)
        shares.append(share)
        allocated += share
    shares.append(amount - allocated)
    return shares


def price_cart(cart, rules: PricingRules) -> CartTotals:
    """Recompute a cart aggregate in place. Saved lines keep a line total but stay out of the sums."""
    for item in cart.items:
        item.line_total = to_money(Decimal(item.unit_price) * item.quantity)
    active = cart.active_items

    item_count = sum(item.quantity for item in active)
    vendor_count = len({item.vendor_id for item in active})
    totals = compute_totals(
        (item.line_total for item in active),
        country=cart.destination_country,
        discount=cart.discount_amount or ZERO,
        vendor_count=vendor_count,
        item_count=item_count,
        rules=rules,
    )

    weights = [item.line_total for item in active]
    for item, tax_share, discount_share in zip(
        active, allocate(totals.tax, weights), allocate(totals.discount, weights)
    ):
        item.tax_amount = tax_share
        item.discount_amount = discount_share
    for item in cart.items:
        if item.is_saved_for_later:
            item.tax_amount = ZERO
            item.discount_amount = ZERO

    cart.item_count = totals.item_count
    cart.vendor_count = totals.vendor_count
    cart.subtotal_amount = totals.subtotal
    cart.tax_amount = totals.tax
    cart.shipping_amount = totals.shipping
    cart.discount_amount = totals.discount
    cart.total_amount = totals.total
    return totals


@lru_cache
def get_pricing_rules() -> PricingRules:
    return PricingRules.from_settings()
