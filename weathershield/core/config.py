"""Application configuration loaded from environment variables."""

from pydantic_settings import BaseSettings

UNIT = 10**18  # base units per whole coin
DAY_SECONDS = 24 * 60 * 60


class Settings(BaseSettings):
    # Pricing (integer base units, basis points)
    base_premium_rate_bps: int = 500  # 5% of coverage per year
    minimum_premium: int = UNIT // 1000

    # Policy limits
    min_coverage: int = UNIT // 100
    max_coverage: int = 100 * UNIT
    min_duration_seconds: int = 7 * DAY_SECONDS
    max_duration_seconds: int = 365 * DAY_SECONDS

    # Governance
    owner_account: str = "owner"
    treasury_account: str = "treasury"
    authorized_providers: list[str] = []

    # OpenWeatherMap
    openweather_api_key: str | None = None
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"
    weather_request_timeout: float = 10.0

    # Oracle fulfiller
    oracle_account: str = "oracle-service"
    oracle_fulfiller_enabled: bool = False
    oracle_interval_seconds: int = 60
    oracle_monitor_default_locations: bool = True

    # Webhooks
    webhook_timeout_seconds: float = 10.0
    webhook_max_retries: int = 3

    # Authentication
    admin_secret: str = "changeme-admin-secret"
    bootstrap_api_key: str | None = None
    bootstrap_account: str = "bootstrap"

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
