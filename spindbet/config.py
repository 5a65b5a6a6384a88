"""Application configuration."""
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings

MAX_HOUSE_EDGE = Decimal("0.5")


@dataclass(frozen=True)
class ReferralRates:
    """Two-level referral bonus rates for one trigger type."""

    level1: Decimal
    level2: Decimal


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    log_level: str = "INFO"
    json_logs: bool = False

    # Database - 필수 필드 (환경변수에서 반드시 읽어야 함)
    database_url: str = Field(
        ...,
        description="Database connection URL (required)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )

    # Redis - 필수 필드
    redis_url: str = Field(
        ...,
        description="Redis connection URL (required)",
    )
    balance_cache_ttl: int = Field(
        default=300,
        description="Balance read-cache TTL in seconds",
    )
    account_lock_ttl: int = Field(
        default=10,
        description="Per-account lock timeout in seconds",
    )

    # Crypto Pay gateway
    cryptopay_api_token: str = Field(
        ...,
        description="Crypto Pay API token (required)",
    )
    cryptopay_api_url: str = "https://pay.crypt.bot/api"
    cryptopay_asset: str = "USDT"
    gateway_timeout: float = Field(
        default=10.0,
        description="Gateway request timeout in seconds",
    )
    invoice_ttl_seconds: int = Field(
        default=3600,
        description="Deposit invoice lifetime (expiresAt)",
    )

    # Wagers
    min_stake: Decimal = Decimal("0.01")
    max_stake: Decimal = Decimal("1000")

    # Referral policy - deposits and wins are paid at different rates
    referral_deposit_level1_rate: Decimal = Decimal("0.05")
    referral_deposit_level2_rate: Decimal = Decimal("0.02")
    referral_win_level1_rate: Decimal = Decimal("0.01")
    referral_win_level2_rate: Decimal = Decimal("0")

    # Daily bonus
    daily_bonus_amount: Decimal = Decimal("0.01")
    daily_bonus_cooldown_hours: int = 24

    # HouseConfig seed values (the DB row is the runtime source of truth)
    default_house_edge: Decimal = Decimal("0.05")
    default_min_deposit: Decimal = Decimal("0.01")
    default_min_withdrawal: Decimal = Decimal("0.2")

    @field_validator(
        "referral_deposit_level1_rate",
        "referral_deposit_level2_rate",
        "referral_win_level1_rate",
        "referral_win_level2_rate",
        "default_house_edge",
    )
    @classmethod
    def validate_rate(cls, v: Decimal) -> Decimal:
        """Rates and edges are fractions within [0, 0.5]."""
        if v < 0 or v > MAX_HOUSE_EDGE:
            raise ValueError(f"rate must be within [0, {MAX_HOUSE_EDGE}], got {v}")
        return v

    @field_validator("min_stake", "default_min_deposit", "default_min_withdrawal")
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("minimum amounts must be positive")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.max_stake < self.min_stake:
            raise ValueError("max_stake must not be lower than min_stake")

        if self.app_env == "production":
            # 프로덕션에서는 JSON 로그 강제
            object.__setattr__(self, "json_logs", True)

        return self

    @property
    def deposit_referral_rates(self) -> ReferralRates:
        return ReferralRates(
            level1=self.referral_deposit_level1_rate,
            level2=self.referral_deposit_level2_rate,
        )

    @property
    def win_referral_rates(self) -> ReferralRates:
        return ReferralRates(
            level1=self.referral_win_level1_rate,
            level2=self.referral_win_level2_rate,
        )

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
