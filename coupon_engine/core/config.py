from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "coupon-engine"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/coupons.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Coupon engine
    COUPON_RECENT_USAGE_DAYS: int = 30
    COUPON_TOP_COUPONS_LIMIT: int = 5
    COUPON_REFUND_RELEASES_CAPACITY: bool = False
    COUPON_USAGE_HISTORY_PAGE_SIZE: int = 20
    COUPON_LIST_PAGE_SIZE: int = 50

    # Seconds clients should wait before retrying a failed redemption
    REDEMPTION_RETRY_AFTER_SECONDS: int = 1


settings = Settings()
