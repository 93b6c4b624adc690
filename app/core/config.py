import json
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Настройки базы данных
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "installments"

    # Настройки JWT токенов (токен выпускает сервис авторизации, мы только проверяем)
    SECRET_KEY: str = "change-me"
    ALGORITHM: str = "HS256"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    ADMIN_USER_IDS_STR: str = Field(default="", alias="ADMIN_USER_IDS")

    @property
    def ADMIN_IDS(self) -> List[int]:
        return [int(admin_id.strip()) for admin_id in self.ADMIN_USER_IDS_STR.split(',') if admin_id.strip()]

    CORS_ORIGINS_STR: str = Field(default="", alias="CORS_ORIGINS")

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(",") if origin.strip()]

    # Платежный шлюз (Razorpay)
    RAZORPAY_API_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_WEBHOOK_SECRET: str = ""
    PAYMENT_CURRENCY: str = "INR"

    # Все "сегодня" в системе считаются в этой таймзоне
    BUSINESS_TIMEZONE: str = "Asia/Kolkata"

    # Рассрочка
    INSTALLMENT_DAILY_RATES_JSON: str = "[100, 200, 300, 500]"
    INSTALLMENT_DAILY_RATES: List[int] = []
    DEFAULT_DAILY_AMOUNT: int = 100
    PENDING_TRANSACTION_TTL_HOURS: int = 24

    # Реферальная программа
    REFERRAL_DEFAULT_DAYS: int = 30
    REFERRAL_COMMISSION_PERCENTAGE: int = 30
    MIN_WITHDRAWAL_AMOUNT: int = 100

    # Ежедневный проход по комиссиям (cron в BUSINESS_TIMEZONE)
    COMMISSION_SWEEP_HOUR: int = 23
    COMMISSION_SWEEP_MINUTE: int = 55

    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    PAYMENT_RATE_LIMIT: str = "20/minute"

    @field_validator("INSTALLMENT_DAILY_RATES", mode="before")
    def parse_installment_rates(cls, v, values):
        # Список ставок приходит строкой JSON из .env
        json_str = values.data.get("INSTALLMENT_DAILY_RATES_JSON")
        if json_str:
            return sorted(int(rate) for rate in json.loads(json_str))
        return v

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"
    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    model_config = SettingsConfigDict(env_file=".env", populate_by_name=True, validate_default=True)

settings = Settings()
