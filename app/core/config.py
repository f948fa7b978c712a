from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StripeAccountConfig(BaseModel):
    label: str
    secret_key: str = ""
    publishable_key: str = ""
    webhook_secret: str = ""
    active: bool = False
    order: int = 0


class Settings(BaseSettings):
    APP_NAME: str = "Shopify x Stripe Checkout Reconciler"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str
    DB_POOL_SIZE: int = 3
    DB_MAX_OVERFLOW: int = 2
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 300
    DB_ECHO: bool = False

    CORS_ORIGINS: str = "*"
    CORS_CREDENTIALS: bool = True

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_PASSWORD: str = ""

    # ── Stripe ──
    # JSON list, e.g. [{"label": "Account 1", "secret_key": "sk_...", ...}]
    STRIPE_ACCOUNTS: list[StripeAccountConfig] = Field(default_factory=list)
    STRIPE_WEBHOOK_TOLERANCE: int = 300

    # ── Shopify ──
    SHOPIFY_SHOP_DOMAIN: str = ""
    SHOPIFY_CLIENT_ID: str = ""
    SHOPIFY_CLIENT_SECRET: str = ""
    SHOPIFY_API_VERSION: str = "2024-10"
    SHOPIFY_STOREFRONT_TOKEN: str = ""
    # Cached admin tokens are dropped this many seconds before they expire
    SHOPIFY_TOKEN_REFRESH_MARGIN: int = 14400

    # ── Order defaults ──
    ORDER_FALLBACK_EMAIL: str = "noreply@example.com"
    DEFAULT_COUNTRY_CODE: str = "IT"
    SHIPPING_LINE_TITLE: str = "Free Shipping"
    UPSELL_MIN_AMOUNT_CENTS: int = 50

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

    @field_validator("SHOPIFY_SHOP_DOMAIN")
    @classmethod
    def strip_shop_domain(cls, v: str) -> str:
        v = v.strip()
        for scheme in ("https://", "http://"):
            if v.startswith(scheme):
                v = v[len(scheme):]
        return v.rstrip("/")


settings = Settings()
