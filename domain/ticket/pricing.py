"""
Ticket pricing.

    subtotal     = base_price * quantity
    platform_fee = subtotal * fee_rate
    tax          = (subtotal + platform_fee) * tax_rate   # the fee is taxed too
    total_amount = subtotal + platform_fee + tax - discount
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from domain.common.exceptions import DomainValidationException
from domain.common.money import (
    DEFAULT_CURRENCY,
    Number,
    compute_fee_and_tax,
    compute_total,
    rate_from_percent,
    round_money,
    to_decimal,
    to_money,
)


@dataclass(frozen=True)
class TicketPricing:
    base_price: Decimal
    quantity: int
    fee_rate_percent: Decimal
    tax_rate_percent: Decimal
    discount: Decimal
    subtotal: Decimal
    platform_fee: Decimal
    tax: Decimal
    total_amount: Decimal
    currency: str = DEFAULT_CURRENCY


def price_ticket(
    base_price: Number,
    quantity: int,
    fee_rate_percent: Number = Decimal("5"),
    tax_rate_percent: Number = Decimal("18"),
    discount: Number = Decimal("0"),
    currency: str = DEFAULT_CURRENCY,
) -> TicketPricing:
    """Compute the derived pricing block of a ticket.

    Raises:
        DomainValidationException: base_price rounding to 0.00 or less, quantity < 1, a rate outside
            [0, 100] or a discount larger than the gross amount.
    """
    price = to_money(base_price, field="base_price")
    if price <= 0:
        raise DomainValidationException(f"base_price must be positive after rounding: {price}", field="base_price")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise DomainValidationException(f"quantity must be an integer >= 1: {quantity!r}", field="quantity")
    fee_percent = to_decimal(fee_rate_percent, field="fee_rate_percent")
    tax_percent = to_decimal(tax_rate_percent, field="tax_rate_percent")

    subtotal = round_money(price * quantity)
    fee, tax = compute_fee_and_tax(
        subtotal,
        rate_from_percent(fee_percent, field="fee_rate_percent"),
        rate_from_percent(tax_percent, field="tax_rate_percent"),
    )
    disc = to_money(discount, field="discount")
    total = compute_total(subtotal, fee, tax, disc)

    return TicketPricing(
        base_price=price,
        quantity=quantity,
        fee_rate_percent=fee_percent,
        tax_rate_percent=tax_percent,
        discount=disc,
        subtotal=subtotal,
        platform_fee=fee,
        tax=tax,
        total_amount=total,
        currency=currency,
    )
