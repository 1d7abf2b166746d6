from decimal import Decimal

import pytest

from cart_engine.services.pricing import (
    PricingRules,
    allocate,
    compute_shipping,
    compute_tax,
    compute_totals,
    to_money,
)


def test_to_money_rounds_half_up_to_cents():
    assert to_money("2.345") == Decimal("2.35")
    assert to_money("2.344") == Decimal("2.34")
    assert to_money(0.1) == Decimal("0.10")


@pytest.mark.parametrize(
    "country, expected",
    [("TH", "7.00"), ("sg", "8.00"), ("ID", "11.00"), ("PH", "12.00"), ("BR", "5.00"), (None, "5.00")],
)
def test_tax_uses_country_rate_or_default(pricing_rules: PricingRules, country, expected):
    assert compute_tax(Decimal("100.00"), country, pricing_rules) == Decimal(expected)


def test_tax_rounds_to_cents(pricing_rules: PricingRules):
    # 33.33 * 0.07 = 2.3331
    assert compute_tax(Decimal("33.33"), "TH", pricing_rules) == Decimal("2.33")


def test_zero_subtotal_has_no_tax_or_shipping(pricing_rules: PricingRules):
    totals = compute_totals(
        [], country="US", discount=Decimal("0"), vendor_count=0, item_count=0, rules=pricing_rules
    )
    assert totals.subtotal == Decimal("0.00")
    assert totals.tax == Decimal("0.00")
    assert totals.shipping == Decimal("0.00")
    assert totals.total == Decimal("0.00")


def test_free_shipping_boundary_is_inclusive(pricing_rules: PricingRules):
    below = compute_shipping(Decimal("99.99"), "US", vendor_count=1, item_count=1, rules=pricing_rules)
    at = compute_shipping(Decimal("100.00"), "US", vendor_count=1, item_count=1, rules=pricing_rules)
    assert below == Decimal("10.00")
    assert at == Decimal("0.00")


def test_shipping_multi_vendor_and_bulk_surcharges(pricing_rules: PricingRules):
    # base 4.00 (MY) + 2 extra vendors * 50% of base + 3 units beyond 5 * 0.50
    shipping = compute_shipping(Decimal("60.00"), "MY", vendor_count=3, item_count=8, rules=pricing_rules)
    assert shipping == Decimal("9.50")


def test_shipping_unknown_country_uses_default_rate(pricing_rules: PricingRules):
    assert compute_shipping(Decimal("20.00"), "BR", vendor_count=1, item_count=1, rules=pricing_rules) == Decimal("8.00")


def test_totals_formula_and_determinism(pricing_rules: PricingRules):
    kwargs = dict(country="TH", discount=Decimal("5.00"), vendor_count=2, item_count=3, rules=pricing_rules)
    first = compute_totals([Decimal("20.00"), Decimal("15.50")], **kwargs)
    second = compute_totals([Decimal("20.00"), Decimal("15.50")], **kwargs)

    assert first == second
    assert first.subtotal == Decimal("35.50")
    assert first.tax == Decimal("2.49")
    assert first.shipping == Decimal("4.50")
    assert first.total == first.subtotal + first.tax + first.shipping - first.discount
    assert first.total == Decimal("37.49")


def test_custom_rules_are_honoured():
    rules = PricingRules(
        tax_rates={"NZ": Decimal("0.15")},
        default_tax_rate=Decimal("0"),
        shipping_rates={"NZ": Decimal("12.00")},
        default_shipping_rate=Decimal("20.00"),
        free_shipping_threshold=Decimal("200.00"),
    )
    totals = compute_totals(
        [Decimal("150.00")], country="nz", discount=Decimal("0"), vendor_count=1, item_count=1, rules=rules
    )
    assert totals.tax == Decimal("22.50")
    assert totals.shipping == Decimal("12.00")


def test_allocate_last_share_absorbs_rounding():
    shares = allocate(Decimal("1.00"), [Decimal("1"), Decimal("1"), Decimal("1")])
    assert shares == [Decimal("0.33"), Decimal("0.33"), Decimal("0.34")]
    assert sum(shares) == Decimal("1.00")


def test_allocate_zero_amount_or_weights():
    assert allocate(Decimal("0"), [Decimal("5"), Decimal("5")]) == [Decimal("0.00"), Decimal("0.00")]
    assert allocate(Decimal("3.00"), []) == []
