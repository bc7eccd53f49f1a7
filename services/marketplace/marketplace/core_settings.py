from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "marketplace"
    POSTGRES_USER: str = "marketplace"
    POSTGRES_PASSWORD: str = "marketplace"
    # Full SQLAlchemy URL; takes precedence over the POSTGRES_* parts
    DATABASE_URL: Optional[str] = None
    REDIS_URL: Optional[str] = None

    LOG_LEVEL: str = "INFO"
    SERVICE_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    PAYMENT_GATEWAY_URL: str = "https://api.razorpay.com/v1"
    PAYMENT_GATEWAY_KEY_ID: str = ""
    PAYMENT_GATEWAY_KEY_SECRET: str = "change-me"
    PAYMENT_CURRENCY: str = "INR"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    FREE_SHIPPING_THRESHOLD: float = 499
    FLAT_SHIPPING_CHARGE: float = 49
    ORDER_ID_PREFIX: str = "MKT"
    ESTIMATED_DELIVERY_DAYS: int = 7

    class Config:
        env_file = ".env"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

@lru_cache
def get_settings() -> Settings:
    return Settings()
