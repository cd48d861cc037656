from functools import lru_cache
from math import ceil
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./kidwallet.db"
    secret_key: str = "change-me"

    # Parent / operator API security
    wallet_api_key: str = ""

    # Wallet math
    wallet_timezone: str = "UTC"
    ledger_default_days: int = 90
    category_daily_caps: dict[str, int] = Field(default_factory=lambda: {"games": 500})

    # Ledger reconciliation across legacy and current tables
    ledger_reconciliation_policy: Literal["sum_all", "prefer_current"] = "sum_all"
    ledger_reconciliation_window_seconds: int = 5

    # Reasons that never count toward wallet math
    ledger_excluded_reasons: list[str] = Field(default_factory=lambda: ["target approved"])
    ledger_excluded_reason_prefixes: list[str] = Field(default_factory=lambda: ["debug"])
    ledger_excluded_reason_fragments: list[str] = Field(default_factory=lambda: ["rpc debug award"])

    @field_validator(
        "ledger_excluded_reasons",
        "ledger_excluded_reason_prefixes",
        "ledger_excluded_reason_fragments",
        mode="before",
    )
    @classmethod
    def _parse_reason_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip().lower() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip().lower() for item in value if str(item).strip()]
        return []

    # Cash-out conversion
    cashout_points_per_dollar: int = 200
    cashout_minimum_cash: int = 10

    # Discrete monthly allowances (not points)
    usage_monthly_limits: dict[str, int] = Field(
        default_factory=lambda: {"premium_image": 10, "gallery_use": 20, "story": 3}
    )

    @property
    def cashout_rate_per_point(self) -> float:
        return 1 / self.cashout_points_per_dollar

    @property
    def cashout_minimum_points(self) -> int:
        return ceil(self.cashout_minimum_cash * self.cashout_points_per_dollar)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
