from decimal import Decimal

import pytest

from cart_engine.domain.enums import DiscountType
from cart_engine.services.coupon_service import (
    CouponCatalog,
    CouponRule,
    calculate_discount,
    evaluate_coupon,
)
from cart_engine.services.exceptions import (
    CouponNotFoundError,
    InvalidCouponError,
    MinimumOrderNotMetError,
    ResourceNotFoundError,
)


@pytest.mark.parametrize(
    "code, subtotal, expected",
    [
        ("SAVE10", "100.00", "10.00"),
        ("SAVE10", "250.00", "20.00"),  # capped at max_discount
        ("save20", "150.00", "30.00"),
        ("SAVE20", "400.00", "50.00"),
        ("FLAT15", "80.00", "15.00"),
        ("WELCOME5", "25.00", "5.00"),
    ],
)
def test_evaluate_coupon_discounts(coupon_catalog: CouponCatalog, code, subtotal, expected):
    rule, discount = evaluate_coupon(code, Decimal(subtotal), coupon_catalog)
    assert rule.code == code.upper()
    assert discount == Decimal(expected)


def test_minimum_order_not_met(coupon_catalog: CouponCatalog):
    with pytest.raises(MinimumOrderNotMetError):
        evaluate_coupon("SAVE10", Decimal("40.00"), coupon_catalog)


def test_unknown_coupon_is_not_found(coupon_catalog: CouponCatalog):
    with pytest.raises(CouponNotFoundError) as excinfo:
        evaluate_coupon("NOPE", Decimal("100.00"), coupon_catalog)
    assert isinstance(excinfo.value, ResourceNotFoundError)
    assert isinstance(excinfo.value, InvalidCouponError)


def test_inactive_coupon_is_invalid():
    catalog = CouponCatalog(
        {
            "OLD": CouponRule(
                code="OLD", discount_type=DiscountType.fixed, value=Decimal("5.00"), is_active=False
            )
        }
    )
    with pytest.raises(InvalidCouponError) as excinfo:
        evaluate_coupon("old", Decimal("100.00"), catalog)
    assert not isinstance(excinfo.value, CouponNotFoundError)


def test_fixed_discount_never_exceeds_subtotal():
    rule = CouponRule(code="BIG", discount_type=DiscountType.fixed, value=Decimal("50.00"))
    assert calculate_discount(rule, Decimal("30.00")) == Decimal("30.00")


def test_percentage_discount_rounds_to_cents():
    rule = CouponRule(code="P", discount_type=DiscountType.percentage, value=Decimal("0.15"))
    # 33.33 * 0.15 = 4.9995
    assert calculate_discount(rule, Decimal("33.33")) == Decimal("5.00")


def test_catalog_from_mapping_normalises_values():
    rule = CouponRule.from_mapping(
        "promo", {"discount_type": "percentage", "value": 0.25, "min_order": 10, "max_discount": "7.5"}
    )
    assert rule.code == "PROMO"
    assert rule.value == Decimal("0.25")
    assert rule.min_order == Decimal("10")
    assert rule.max_discount == Decimal("7.5")
