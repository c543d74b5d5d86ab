from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite+aiosqlite:///./orders.db"
    SQL_ECHO: bool = False
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # Order numbers
    ORDER_NUMBER_PREFIX: str = "CB"
    ORDER_NUMBER_SUFFIX_LENGTH: int = 3
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    # Totals
    FREE_SHIPPING_THRESHOLD: float = 10000
    BASE_SHIPPING_COST: float = 100
    TAX_RATE: float = 0.18
    DEFAULT_COUNTRY: str = "India"

    # Transactions
    TX_MAX_RETRIES: int = 5
    TX_RETRY_WAIT_SECONDS: float = 0.05

    PENDING_ORDER_EXPIRY_HOURS: int = 72

    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "allow"


settings = Settings()
