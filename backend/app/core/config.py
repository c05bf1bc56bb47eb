"""Application configuration from environment variables."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    # Replace non-breaking spaces with normal spaces
    return value.replace("\u00a0", " ").strip()


def _strip_slash(value: str) -> str:
    return value[:-1] if value.endswith("/") else value


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    PROJECT_NAME: str = "SmartBiz Billing"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Auth
    JWT_SECRET: str | None = None
    JWT_ALGORITHM: str = "HS256"

    # Database Settings
    DATABASE_URL: str | None = None
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "smartbiz"
    POSTGRES_HOST: str = "postgres"
    POSTGRES_PORT: int = 5432

    # Subscription lifecycle
    TRIAL_DAYS: int = 14
    SUBSCRIPTION_PENDING_TIMEOUT_MINUTES: int = 15
    SWEEP_INTERVAL_HOURS: int = 24

    # PayOS
    PAYOS_BASE_URL: str = "https://api-merchant.payos.vn"
    PAYOS_CLIENT_ID: str | None = Field(default=None, alias="PAYOS_CLIENT_ID")
    PAYOS_API_KEY: str | None = Field(default=None, alias="PAYOS_API_KEY")
    PAYOS_CHECKSUM_KEY: str | None = Field(default=None, alias="PAYOS_CHECKSUM_KEY")
    PAYOS_TIMEOUT_SECONDS: float = 30.0

    VIETQR_ACQ_ID: str | None = None
    VIETQR_ACCOUNT_NO: str | None = None
    VIETQR_ACCOUNT_NAME: str | None = None

    FRONTEND_URL: str = "http://localhost:5173"
    PAYOS_SUB_RETURN_URL: str | None = None
    PAYOS_SUB_CANCEL_URL: str | None = None

    @field_validator(
        "PAYOS_CLIENT_ID",
        "PAYOS_API_KEY",
        "PAYOS_CHECKSUM_KEY",
        "JWT_SECRET",
        mode="before",
    )
    @classmethod
    def clean_secret_strings(cls, v):
        return _clean_str(v)

    @field_validator("FRONTEND_URL", "PAYOS_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return _strip_slash(v)

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def subscription_return_url(self) -> str:
        return self.PAYOS_SUB_RETURN_URL or f"{self.FRONTEND_URL}/subscription/checkout?status=success"

    @property
    def subscription_cancel_url(self) -> str:
        return self.PAYOS_SUB_CANCEL_URL or f"{self.FRONTEND_URL}/subscription/checkout?status=cancel"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        populate_by_name=True,
    )


settings = Settings()
