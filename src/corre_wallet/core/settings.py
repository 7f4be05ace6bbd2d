from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./corre_wallet.db"
    database_echo: bool = False

    # Logging (JSON lines by default outside development)
    log_level: str = "INFO"
    log_json: bool | None = None

    # Operator endpoints (observability, coupon admin)
    wallet_api_key: str = ""

    # Point grant TTLs per cause
    routine_points_ttl_days: int = 30
    special_points_ttl_days: int = 60
    race_points_ttl_days: int = 365
    purchase_refund_points_ttl_days: int = 365
    expiring_soon_window_days: int = 7

    # Redemption caps (fraction of the cart total payable with points)
    redemption_cap_pro: float = Field(0.20, ge=0, le=1)
    redemption_cap_club: float = Field(0.20, ge=0, le=1)

    # Expiry sweep
    expiry_sweep_enabled: bool = False
    expiry_sweep_interval_seconds: int = 60 * 60
    expiry_sweep_batch_size: int = 500

    # CORS for the mobile/web clients
    cors_allow_origins: list[str] = Field(default_factory=list)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _parse_origin_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
