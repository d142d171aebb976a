"""
Application configuration
"""
import json
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.common.money import SettlementRates


class DatabaseSettings(BaseModel):
    url: str = "sqlite+aiosqlite:///./settlement.db"
    echo: bool = False


class SettlementSettings(BaseModel):
    """Rates and policy constants; turned into a domain SettlementRates at startup."""

    currency: str = "INR"
    ticket_fee_percent: Decimal = Decimal("5")
    tax_percent: Decimal = Decimal("18")
    marketplace_commission_rate: Decimal = Decimal("0.15")
    points_to_currency_ratio: Decimal = Decimal("0.5")
    min_redeem_points: int = 100
    # one reward point per this many currency units of a confirmed ticket
    ticket_points_divisor: Decimal = Decimal("100")
    min_recharge_amount: Decimal = Decimal("100")
    recharge_bonus_threshold: Decimal = Decimal("5000")
    recharge_bonus_rate: Decimal = Decimal("0.05")
    max_wallet_balance: Optional[Decimal] = None

    # cancellation and return policy defaults
    refund_percent: Decimal = Decimal("100")
    refund_deadline_hours: Decimal = Decimal("24")
    return_deadline_days: Decimal = Decimal("7")

    def to_rates(self) -> SettlementRates:
        return SettlementRates(
            currency=self.currency,
            ticket_fee_percent=self.ticket_fee_percent,
            tax_percent=self.tax_percent,
            marketplace_commission_rate=self.marketplace_commission_rate,
            points_to_currency_ratio=self.points_to_currency_ratio,
            min_redeem_points=self.min_redeem_points,
            ticket_points_divisor=self.ticket_points_divisor,
            min_recharge_amount=self.min_recharge_amount,
            recharge_bonus_threshold=self.recharge_bonus_threshold,
            recharge_bonus_rate=self.recharge_bonus_rate,
            max_wallet_balance=self.max_wallet_balance,
            refund_percent=self.refund_percent,
            refund_deadline_hours=self.refund_deadline_hours,
            return_deadline_days=self.return_deadline_days,
        )


class Settings(BaseSettings):
    """Project settings"""

    PROJECT_NAME: str = Field(default="Commerce Settlement Service")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=True)
    ENVIRONMENT: str = Field(default="development")

    # nested groups, e.g. DATABASE__URL / SETTLEMENT__TAX_PERCENT
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    settlement: SettlementSettings = Field(default_factory=SettlementSettings)

    CORS_ORIGINS: list = Field(default=["http://localhost:3000", "http://localhost:8000"])

    DEFAULT_PAGE_SIZE: int = Field(default=20)
    MAX_PAGE_SIZE: int = Field(default=100)

    # request body logging (off unless enabled; X-Log-Body header overrides)
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=False)
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """Accept a JSON list or a comma separated string."""
        if isinstance(v, list):
            return v
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("[") and s.endswith("]"):
                try:
                    arr = json.loads(s)
                except ValueError:
                    arr = None
                if isinstance(arr, list):
                    return arr
            if "," in s:
                return [item.strip() for item in s.split(",") if item.strip()]
            return [s]
        return v


settings = Settings()
