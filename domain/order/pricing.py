"""
Marketplace order pricing.

    items_total         = sum(unit_price * quantity)
    platform_commission = items_total * commission_rate
    tax                 = (items_total + shipping_cost) * tax_rate
    total_amount        = items_total + shipping_cost + tax - discount
    vendor_payout       = items_total - platform_commission

Unlike tickets, the platform's cut is not taxed here: shipping is, the
commission is not, and neither shipping nor tax reach the vendor.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from domain.common.exceptions import DomainValidationException
from domain.common.money import (
    DEFAULT_CURRENCY,
    Number,
    ZERO,
    compute_total,
    percent_of,
    rate_from_percent,
    round_money,
    to_decimal,
    to_money,
    validate_rate,
)


@dataclass(frozen=True)
class OrderPricing:
    items_total: Decimal
    commission_rate: Decimal
    platform_commission: Decimal
    shipping_cost: Decimal
    tax_rate_percent: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal
    vendor_payout: Decimal
    line_subtotals: tuple[Decimal, ...] = ()
    currency: str = DEFAULT_CURRENCY


def _line_values(item: Any) -> tuple[Any, Any]:
    if isinstance(item, Mapping):
        return item.get("unit_price"), item.get("quantity")
    return getattr(item, "unit_price", None), getattr(item, "quantity", None)


def line_subtotal(unit_price: Number, quantity: int) -> Decimal:
    price = to_money(unit_price, field="unit_price")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise DomainValidationException(f"quantity must be an integer >= 1: {quantity!r}", field="quantity")
    return round_money(price * quantity)


def price_order(
    items: Iterable[Any],
    commission_rate: Number = Decimal("0.15"),
    shipping_cost: Number = Decimal("0"),
    tax_rate_percent: Number = Decimal("18"),
    discount: Number = Decimal("0"),
    currency: str = DEFAULT_CURRENCY,
) -> OrderPricing:
    """Compute the order pricing block.

    ``items`` may be entities or mappings exposing ``unit_price`` and
    ``quantity``. The per-line subtotals are returned in input order for
    line-item display.
    """
    subtotals = []
    for item in items:
        unit_price, quantity = _line_values(item)
        if unit_price is None or quantity is None:
            raise DomainValidationException("each item needs unit_price and quantity", field="items")
        subtotals.append(line_subtotal(unit_price, quantity))
    if not subtotals:
        raise DomainValidationException("an order needs at least one item", field="items")

    rate = validate_rate(commission_rate, field="commission_rate")
    tax_percent = to_decimal(tax_rate_percent, field="tax_rate_percent")
    shipping = to_money(shipping_cost, field="shipping_cost")

    items_total = round_money(sum(subtotals, ZERO))
    commission = percent_of(items_total, rate)
    tax = percent_of(items_total + shipping, rate_from_percent(tax_percent, field="tax_rate_percent"))
    disc = to_money(discount, field="discount")
    total = compute_total(items_total, shipping, tax, disc)

    return OrderPricing(
        items_total=items_total,
        commission_rate=rate,
        platform_commission=commission,
        shipping_cost=shipping,
        tax_rate_percent=tax_percent,
        tax=tax,
        discount=disc,
        total_amount=total,
        vendor_payout=items_total - commission,
        line_subtotals=tuple(subtotals),
        currency=currency,
    )
