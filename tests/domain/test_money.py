from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.common.money import (
    SettlementRates,
    compute_fee_and_tax,
    compute_total,
    rate_from_percent,
    round_money,
    to_decimal,
    to_money,
    validate_rate,
)


def test_round_money_is_half_up():
    assert round_money("2.345") == Decimal("2.35")
    assert round_money("2.344") == Decimal("2.34")
    assert round_money(Decimal("0.005")) == Decimal("0.01")


def test_floats_go_through_str():
    assert to_decimal(0.1) + to_decimal(0.2) == Decimal("0.3")


def test_invalid_numbers_rejected():
    with pytest.raises(DomainValidationException):
        to_decimal("abc")
    with pytest.raises(DomainValidationException):
        to_decimal(Decimal("NaN"))
    with pytest.raises(DomainValidationException) as exc_info:
        to_money("-1", field="shipping_cost")
    assert exc_info.value.field == "shipping_cost"


def test_rates():
    assert rate_from_percent(18) == Decimal("0.18")
    with pytest.raises(DomainValidationException):
        rate_from_percent(101)
    with pytest.raises(DomainValidationException):
        validate_rate("1.5")


def test_tax_is_charged_on_fee_too():
    fee, tax = compute_fee_and_tax(Decimal("200"), Decimal("0.05"), Decimal("0.18"))
    assert fee == Decimal("10.00")
    assert tax == Decimal("37.80")


def test_discount_larger_than_gross_rejected():
    assert compute_total(Decimal("100.00"), Decimal("5.00"), Decimal("18.90"), "3.90") == Decimal("120.00")
    with pytest.raises(DomainValidationException):
        compute_total(Decimal("1.00"), Decimal("0.00"), Decimal("0.00"), "2")


def test_settlement_rates_validated():
    assert SettlementRates().marketplace_commission_rate == Decimal("0.15")
    with pytest.raises(DomainValidationException):
        SettlementRates(tax_percent=Decimal("120"))
    with pytest.raises(DomainValidationException):
        SettlementRates(min_redeem_points=0)
