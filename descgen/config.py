"""Configuration loaded from environment (.env) and defaults."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Locate the project root .env file (works regardless of CWD)
_THIS_DIR = Path(__file__).resolve().parent          # descgen/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

APP_VERSION = "1.0.0"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # development | production | test
    environment: str = "development"
    log_level: str = "INFO"

    # OpenAI
    openai_api_key: str | None = None
    openai_model: str = "gpt-4"
    openai_max_tokens: int = 1000
    openai_temperature: float = 0.7
    openai_timeout: float = 30.0

    # Shopify
    shopify_api_key: str | None = None
    shopify_api_secret: str | None = None
    shopify_api_version: str = "2023-10"
    shopify_webhook_secret: str | None = None
    shopify_timeout: float = 15.0

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_currency: str = "usd"
    stripe_price_basic_id: str | None = None
    stripe_price_pro_id: str | None = None
    stripe_price_enterprise_id: str | None = None
    stripe_timeout: float = 30.0

    # Postgres; file-based stores under data_dir when unset
    database_url: str | None = None

    # Redis; in-memory rate limiting and no product cache when unset
    redis_url: str | None = None
    cache_ttl_seconds: int = 3600

    # Data directory for file-based stores
    descgen_data_dir: str = "./data"

    # CORS origins (comma-separated). Defaults to localhost dev.
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    cors_origin_regex: str | None = None

    port: int = 3001
    frontend_url: str = "http://localhost:3000"

    # Auth
    token_ttl_seconds: int = 24 * 60 * 60

    # Rate limiting (per client IP, /api routes)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 1000

    # Bulk generation
    batch_chunk_size: int = 5
    batch_delay_seconds: float = 2.0

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def data_dir(self) -> Path:
        """Get data directory as Path.

        Relative paths are resolved against the project root (not CWD).
        """
        p = Path(self.descgen_data_dir)
        if not p.is_absolute():
            return (_PROJECT_ROOT / p).resolve()
        return p.resolve()

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def stripe_price_ids(self) -> dict[str, str | None]:
        """Plan name -> configured Stripe price id."""
        return {
            "basic": self.stripe_price_basic_id,
            "pro": self.stripe_price_pro_id,
            "enterprise": self.stripe_price_enterprise_id,
        }

    def ensure_dirs(self) -> None:
        """Ensure all data directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_dirs()
    return settings
