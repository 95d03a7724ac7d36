from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "CloudPayments Gateway Bridge"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 3
    DB_MAX_OVERFLOW: int = 2
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False

    CORS_ORIGINS: str = "*"
    CORS_CREDENTIALS: bool = True

    # ── CloudPayments gateway settings ──
    # Required
    CLOUDPAYMENTS_PUBLIC_ID: str = ""
    CLOUDPAYMENTS_API_SECRET: str = ""
    # Invoice id prefix: {app_id}_{merchant_id}_{order_id}
    CLOUDPAYMENTS_APP_ID: str = "shop"
    CLOUDPAYMENTS_MERCHANT_ID: str = "1"
    CLOUDPAYMENTS_API_URL: str = "https://api.cloudpayments.ru/payments/tokens/auth"
    CLOUDPAYMENTS_DEFAULT_EMAIL: str = ""
    CLOUDPAYMENTS_VERIFY_TLS: bool = True
    CLOUDPAYMENTS_TIMEOUT: float = 30.0
    # Log outbound requests and gateway responses
    CLOUDPAYMENTS_TEST_MODE: bool = False
    CLOUDPAYMENTS_SEND_LOG: bool = False

    # ── Host commerce application ──
    HOST_BASE_URL: str = "http://localhost:8080/api"
    HOST_API_KEY: str = ""
    HOST_TIMEOUT: float = 15.0

    SLACK_ALERTS_URL: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def gateway_logging_enabled(self) -> bool:
        return self.CLOUDPAYMENTS_TEST_MODE or self.CLOUDPAYMENTS_SEND_LOG

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if "asyncpg" not in v and "aiosqlite" not in v:
            raise ValueError("DATABASE_URL must use an async driver (asyncpg or aiosqlite)")
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v.lower()

settings = Settings()
