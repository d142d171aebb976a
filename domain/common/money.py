"""
Fixed-point money helpers.

Amounts are non-negative ``Decimal`` values in a single currency. Every derived
amount is rounded to the currency minor unit (2 places, half-up) as soon as it
is computed; later amounts are built from the rounded parts, so a total always
equals the sum of its stored components.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union

from domain.common.exceptions import DomainValidationException

DEFAULT_CURRENCY = "INR"
CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str, float]


def to_decimal(value: Number, *, field: str = "amount") -> Decimal:
    """Convert to Decimal without binary float artefacts (floats go through str)."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise DomainValidationException(f"Invalid number for {field}: {value!r}", field=field) from exc
    if not result.is_finite():
        raise DomainValidationException(f"Invalid number for {field}: {value!r}", field=field)
    return result


def round_money(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Number, *, field: str = "amount") -> Decimal:
    """Parse a non-negative money amount rounded to the minor unit."""
    amount = to_decimal(value, field=field)
    if amount < 0:
        raise DomainValidationException(f"{field} cannot be negative: {amount}", field=field)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def rate_from_percent(percent: Number, *, field: str = "rate_percent") -> Decimal:
    """Turn a percentage in [0, 100] into a fraction in [0, 1]."""
    value = to_decimal(percent, field=field)
    if value < 0 or value > HUNDRED:
        raise DomainValidationException(f"{field} must be within [0, 100]: {value}", field=field)
    return value / HUNDRED


def validate_rate(rate: Number, *, field: str = "rate") -> Decimal:
    value = to_decimal(rate, field=field)
    if value < 0 or value > 1:
        raise DomainValidationException(f"{field} must be within [0, 1]: {value}", field=field)
    return value


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    return round_money(amount * rate)


def compute_fee_and_tax(subtotal: Number, fee_rate: Number, tax_rate: Number) -> tuple[Decimal, Decimal]:
    """Return ``(fee, tax)``; tax is charged on ``subtotal + fee``."""
    base = to_money(subtotal, field="subtotal")
    fee = percent_of(base, validate_rate(fee_rate, field="fee_rate"))
    tax = percent_of(base + fee, validate_rate(tax_rate, field="tax_rate"))
    return fee, tax


def compute_total(subtotal: Decimal, fee: Decimal, tax: Decimal, discount: Number = ZERO) -> Decimal:
    """``subtotal + fee + tax - discount``; a discount larger than the gross is rejected."""
    disc = to_money(discount, field="discount")
    total = subtotal + fee + tax - disc
    if total < 0:
        raise DomainValidationException(
            f"Discount {disc} exceeds gross amount {subtotal + fee + tax}",
            field="discount",
        )
    return round_money(total)


@dataclass(frozen=True)
class SettlementRates:
    """Rates and policy constants injected into the pricing and ledger calls.

    Built once at startup from configuration; the domain never reads settings.
    """

    currency: str = DEFAULT_CURRENCY
    ticket_fee_percent: Decimal = Decimal("5")
    tax_percent: Decimal = Decimal("18")
    marketplace_commission_rate: Decimal = Decimal("0.15")
    points_to_currency_ratio: Decimal = Decimal("0.5")
    min_redeem_points: int = 100
    ticket_points_divisor: Decimal = Decimal("100")
    min_recharge_amount: Decimal = Decimal("100")
    recharge_bonus_threshold: Decimal = Decimal("5000")
    recharge_bonus_rate: Decimal = Decimal("0.05")
    max_wallet_balance: Optional[Decimal] = None
    refund_percent: Decimal = Decimal("100")
    refund_deadline_hours: Decimal = Decimal("24")
    return_deadline_days: Decimal = Decimal("7")

    def __post_init__(self) -> None:
        rate_from_percent(self.ticket_fee_percent, field="ticket_fee_percent")
        rate_from_percent(self.tax_percent, field="tax_percent")
        validate_rate(self.marketplace_commission_rate, field="marketplace_commission_rate")
        validate_rate(self.recharge_bonus_rate, field="recharge_bonus_rate")
        if self.points_to_currency_ratio <= 0:
            raise DomainValidationException(
                "points_to_currency_ratio must be positive", field="points_to_currency_ratio"
            )
        if self.min_redeem_points < 1:
            raise DomainValidationException("min_redeem_points must be >= 1", field="min_redeem_points")
        if self.ticket_points_divisor <= 0:
            raise DomainValidationException("ticket_points_divisor must be positive", field="ticket_points_divisor")


DEFAULT_RATES = SettlementRates()
