from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    APP_ENV: str = "dev"
    APP_SECRET: str
    DB_URL: str
    JWT_ISS: str = "shiftledger"
    JWT_EXP_MIN: int = 12*60
    LOG_LEVEL: str = "INFO"

    # Business shift: 18:00 -> 03:00 at a fixed UTC+7 offset (no DST)
    SHIFT_UTC_OFFSET_HOURS: int = 7
    SHIFT_START_HOUR: int = 18
    SHIFT_END_HOUR: int = 3

    # Stock ledger tolerances (absolute variance still counted as OK)
    ROLLS_TOLERANCE: Decimal = Decimal("5")
    MEAT_TOLERANCE_G: Decimal = Decimal("500")
    DRINKS_TOLERANCE: Decimal = Decimal("2")
    MEAT_GRAMS_PER_PATTY: Decimal = Decimal("95")

    # Shift reconciliation tolerances (currency units)
    SALES_TOLERANCE: Decimal = Decimal("100")
    CASH_TOLERANCE: Decimal = Decimal("50")
    QR_TOLERANCE: Decimal = Decimal("50")

    USAGE_SOURCE: str = "sql"               # sql | http
    USAGE_SOURCE_URL: str | None = None
    USAGE_SOURCE_TIMEOUT: float = 10.0
    BACKFILL_DAYS: int = 14

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
settings = Settings()
