"""Application configuration with strict environment validation."""

from pathlib import Path
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"

STORE_BACKENDS = ("memory", "file", "redis")


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        allow_inf_nan=False,
    )

    # --- API metadata ---
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Storefront Cart"
    LOG_LEVEL: str = "INFO"

    # --- Persistencia del carrito ---
    CART_STORE_BACKEND: str = "memory"
    CART_STORAGE_KEY: str = "modern_cart_data"
    CART_STORE_DIR: Path = Path("data/storage")
    REDIS_URL: str | None = None
    CART_REDIS_PREFIX: str = "cart"
    CART_MAX_AGE_DAYS: int = 30

    # --- Reglas de precio ---
    CART_DEFAULT_MAX_QUANTITY: int = Field(default=10, ge=1)
    CART_DEFAULT_SHIPPING_COST: float = 5.99
    CART_CURRENCY: str = Field(default="USD", min_length=3, max_length=3)
    CART_TAX_RATE: float = 0.1
    CART_FREE_SHIPPING_THRESHOLD: float = 50.0

    @field_validator("CART_STORE_BACKEND")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"CART_STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}.")
        return backend

    @field_validator("CART_TAX_RATE", "CART_FREE_SHIPPING_THRESHOLD", "CART_DEFAULT_SHIPPING_COST")
    @classmethod
    def validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("Pricing settings must not be negative.")
        return value

    @field_validator("CART_MAX_AGE_DAYS")
    @classmethod
    def validate_max_age(cls, value: int) -> int:
        if value < 1:
            raise ValueError("CART_MAX_AGE_DAYS must be at least one day.")
        return value

    @model_validator(mode="after")
    def check_redis_config(self) -> "Settings":
        if self.CART_STORE_BACKEND == "redis" and not self.REDIS_URL:
            raise ValueError("REDIS_URL must be set when CART_STORE_BACKEND is 'redis'.")
        return self


settings = Settings()
