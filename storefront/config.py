import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# Force-load .env from the project root
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH)


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./storefront.db"
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    tax_rate: Decimal = Decimal("0.10")
    free_shipping_threshold: Decimal = Decimal("100")
    shipping_flat_fee: Decimal = Decimal("10")
    currency: str = "USD"
    environment: str = "development"
    log_level: str | None = None


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
        jwt_secret=os.getenv("JWT_SECRET"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", Settings.jwt_algorithm),
        tax_rate=Decimal(os.getenv("TAX_RATE", "0.10")),
        free_shipping_threshold=Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "100")),
        shipping_flat_fee=Decimal(os.getenv("SHIPPING_FLAT_FEE", "10")),
        currency=os.getenv("CURRENCY", Settings.currency).upper(),
        environment=(os.getenv("ENVIRONMENT") or "development").lower(),
        log_level=os.getenv("LOG_LEVEL"),
    )
