"""Checkout consistency checks.

The validator reads the cart and the catalog and reports what it finds. It
never mutates the cart: stale snapshots are surfaced as issues and the
caller decides whether to block checkout.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache

from cart_engine.core.config import Settings, settings
from cart_engine.core.logging import get_logger
from cart_engine.core.metrics import record_validation
from cart_engine.domain.enums import IssueSeverity
from cart_engine.models.cart import Cart
from cart_engine.services.catalog_client import CatalogLookup, ProductSnapshot
from cart_engine.services.pricing import CartTotals, PricingRules, compute_totals, get_pricing_rules

logger = get_logger(__name__)


@dataclass(frozen=True)
class ShippingRestriction:
    """Forbids shipping ``category`` to ``country``. ``None`` matches anything."""

    category: str | None
    country: str | None
    reason: str | None = None

    def matches(self, category: str | None, country: str | None) -> bool:
        if self.category is not None and (category or "").lower() != self.category.lower():
            return False
        if self.country is not None and (country or "").upper() != self.country.upper():
            return False
        return True


@dataclass(frozen=True)
class ValidationRules:
    allowed_countries: frozenset[str]
    restrictions: tuple[ShippingRestriction, ...] = ()
    minimum_order_amount: Decimal = Decimal("1.00")
    price_drift_tolerance: Decimal = Decimal("0.01")

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "ValidationRules":
        return cls(
            allowed_countries=frozenset(code.upper() for code in config.ALLOWED_SHIPPING_COUNTRIES),
            restrictions=tuple(
                ShippingRestriction(
                    category=rule.get("category"),
                    country=rule.get("country"),
                    reason=rule.get("reason"),
                )
                for rule in config.SHIPPING_RESTRICTIONS
            ),
            minimum_order_amount=config.MINIMUM_ORDER_AMOUNT,
            price_drift_tolerance=config.PRICE_DRIFT_TOLERANCE,
        )


@lru_cache
def get_validation_rules() -> ValidationRules:
    return ValidationRules.from_settings()


@dataclass(frozen=True)
class ValidationIssue:
    type: str
    severity: IssueSeverity
    message: str
    product_id: uuid.UUID | None = None
    product_name: str | None = None


@dataclass
class CartValidationReport:
    cart_id: uuid.UUID
    issues: list[ValidationIssue] = field(default_factory=list)
    estimates: CartTotals | None = None

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == IssueSeverity.error for issue in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == IssueSeverity.error]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == IssueSeverity.warning]


def _item_issues(item, product: ProductSnapshot | None, rules: ValidationRules) -> Iterable[ValidationIssue]:
    name = product.name if product else item.product_name
    if product is None or not product.active:
        yield ValidationIssue(
            type="product_unavailable",
            severity=IssueSeverity.error,
            message=f"Product {name or item.product_id} is no longer available",
            product_id=item.product_id,
            product_name=name,
        )
        return

    if product.track_inventory and item.quantity > product.stock_quantity:
        if product.allow_backorders:
            yield ValidationIssue(
                type="backorder",
                severity=IssueSeverity.warning,
                message=(
                    f"Only {product.stock_quantity} of {name} in stock; "
                    f"{item.quantity - product.stock_quantity} will be backordered"
                ),
                product_id=item.product_id,
                product_name=name,
            )
        else:
            yield ValidationIssue(
                type="insufficient_stock",
                severity=IssueSeverity.error,
                message=f"Insufficient stock for {name}: {product.stock_quantity} available, {item.quantity} requested",
                product_id=item.product_id,
                product_name=name,
            )

    drift = abs(Decimal(product.price) - Decimal(item.unit_price))
    if drift > rules.price_drift_tolerance:
        yield ValidationIssue(
            type="price_changed",
            severity=IssueSeverity.warning,
            message=f"Price of {name} changed from {item.unit_price} to {product.price}",
            product_id=item.product_id,
            product_name=name,
        )


def _shipping_issues(
    cart: Cart,
    products: Sequence[ProductSnapshot | None],
    rules: ValidationRules,
) -> Iterable[ValidationIssue]:
    # An empty cart has nothing to ship yet; the empty_cart issue covers it.
    if not products:
        return
    country = cart.destination_country
    if not country:
        yield ValidationIssue(
            type="shipping_restriction",
            severity=IssueSeverity.error,
            message="Shipping address is required",
        )
        return
    if country not in rules.allowed_countries:
        yield ValidationIssue(
            type="shipping_restriction",
            severity=IssueSeverity.error,
            message=f"Shipping not available to {country}",
        )
        return

    for product in products:
        if product is None:
            continue
        for restriction in rules.restrictions:
            if restriction.matches(product.category, country):
                yield ValidationIssue(
                    type="shipping_restriction",
                    severity=IssueSeverity.error,
                    message=restriction.reason
                    or f"{product.category} products cannot be shipped to {country}",
                    product_id=product.product_id,
                    product_name=product.name,
                )
                break


async def validate_cart(
    cart: Cart,
    *,
    catalog: CatalogLookup,
    rules: ValidationRules | None = None,
    pricing_rules: PricingRules | None = None,
) -> CartValidationReport:
    """Check a cart for checkout and return an ordered issue report."""
    rules = rules or get_validation_rules()
    pricing_rules = pricing_rules or get_pricing_rules()
    report = CartValidationReport(cart_id=cart.id)
    items = cart.active_items

    if not items:
        report.issues.append(
            ValidationIssue(type="empty_cart", severity=IssueSeverity.error, message="Cart is empty")
        )

    products: list[ProductSnapshot | None] = []
    for item in items:
        product = await catalog.get_product(item.product_id)
        products.append(product)
        report.issues.extend(_item_issues(item, product, rules))

    report.issues.extend(_shipping_issues(cart, products, rules))

    # An empty cart is already reported as such.
    if items and Decimal(cart.subtotal_amount) < rules.minimum_order_amount:
        report.issues.append(
            ValidationIssue(
                type="minimum_order",
                severity=IssueSeverity.error,
                message=f"Order total must be at least {rules.minimum_order_amount}",
            )
        )

    report.estimates = compute_totals(
        (item.line_total for item in items),
        country=cart.destination_country,
        discount=cart.discount_amount,
        vendor_count=len({item.vendor_id for item in items}),
        item_count=sum(item.quantity for item in items),
        rules=pricing_rules,
    )

    record_validation(report.is_valid)
    logger.info(
        "Cart validated",
        extra={"cart_id": str(cart.id), "is_valid": report.is_valid, "issues": len(report.issues)},
    )
    return report
