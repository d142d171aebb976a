import random
from decimal import Decimal

import pytest

from domain.common.exceptions import DomainValidationException
from domain.ticket.pricing import price_ticket


def test_standard_ticket():
    p = price_ticket(Decimal("100"), 2)
    assert p.subtotal == Decimal("200.00")
    assert p.platform_fee == Decimal("10.00")
    assert p.tax == Decimal("37.80")
    assert p.total_amount == Decimal("247.80")


def test_total_equals_sum_of_rounded_parts():
    p = price_ticket(Decimal("33.33"), 3, fee_rate_percent=Decimal("7.5"), discount=Decimal("1.11"))
    assert p.subtotal == Decimal("99.99")
    assert p.platform_fee == Decimal("7.50")
    assert p.tax == Decimal("19.35")
    assert p.total_amount == p.subtotal + p.platform_fee + p.tax - p.discount


def test_zero_rates():
    p = price_ticket("50", 1, fee_rate_percent=0, tax_rate_percent=0)
    assert p.total_amount == Decimal("50.00")


@pytest.mark.parametrize(
    "kwargs, field",
    [
        ({"base_price": 0, "quantity": 1}, "base_price"),
        ({"base_price": -5, "quantity": 1}, "base_price"),
        ({"base_price": Decimal("0.001"), "quantity": 1}, "base_price"),
        ({"base_price": Decimal("0.004"), "quantity": 5}, "base_price"),
        ({"base_price": 10, "quantity": 0}, "quantity"),
        ({"base_price": 10, "quantity": True}, "quantity"),
        ({"base_price": 10, "quantity": 1, "fee_rate_percent": 150}, "fee_rate_percent"),
        ({"base_price": 10, "quantity": 1, "discount": 100}, "discount"),
    ],
)
def test_invalid_input(kwargs, field):
    with pytest.raises(DomainValidationException) as exc_info:
        price_ticket(**kwargs)
    assert exc_info.value.field == field


def test_smallest_price_that_rounds_up_is_accepted():
    p = price_ticket(Decimal("0.005"), 1, fee_rate_percent=0, tax_rate_percent=0)
    assert p.base_price == Decimal("0.01")
    assert p.total_amount == Decimal("0.01")


def test_same_inputs_price_identically():
    args = (Decimal("149.99"), 3)
    kwargs = {"fee_rate_percent": Decimal("4.5"), "tax_rate_percent": Decimal("12"), "discount": Decimal("5")}
    assert price_ticket(*args, **kwargs) == price_ticket(*args, **kwargs)


@pytest.mark.parametrize("seed", [3, 17, 2026])
def test_total_is_sum_of_parts_across_prices_and_quantities(seed):
    rng = random.Random(seed)
    for _ in range(200):
        base = Decimal(rng.randint(1, 500_000)) / 100
        quantity = rng.randint(1, 25)
        fee = Decimal(rng.randint(0, 2_000)) / 100
        tax = Decimal(rng.randint(0, 3_000)) / 100

        p = price_ticket(base, quantity, fee_rate_percent=fee, tax_rate_percent=tax)

        assert p.subtotal == base * quantity
        assert p.total_amount == p.subtotal + p.platform_fee + p.tax - p.discount
        assert p.total_amount >= p.subtotal
        for part in (p.subtotal, p.platform_fee, p.tax, p.total_amount):
            assert part == part.quantize(Decimal("0.01"))
