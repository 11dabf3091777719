"""Application configuration loaded from environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults and env var overrides.

    Secrets (provider keys, webhook secret, auth API key) have no defaults:
    a missing secret is reported at the point of use instead of silently
    falling back to a shared value.
    """

    # Database
    database_url: str = "sqlite:///./kamerun_payments.db"

    # App
    app_env: str = "development"
    app_port: int = 4000
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    # Maviance SmobilPay
    maviance_public_key: Optional[str] = None
    maviance_secret_key: Optional[str] = None
    maviance_merchant_number: Optional[str] = None
    maviance_base_url: str = "https://s3p.smobilpay.staging.maviance.info/v2"
    provider_timeout_seconds: float = 30.0

    # Public URLs handed to the provider
    public_base_url: str = "http://localhost:4000"
    callback_url: Optional[str] = None
    return_url: Optional[str] = None

    # Webhook authenticity
    webhook_secret: Optional[str] = None
    webhook_signature_header: str = "X-Smobilpay-Signature"

    # External auth service (Supabase-style /auth/v1/user)
    auth_url: Optional[str] = None
    auth_api_key: Optional[str] = None
    auth_timeout_seconds: float = 10.0

    # Payments
    currency: str = "XAF"
    default_amount: int = 1000
    default_description: str = "Abonnement Premium Kamerun News"
    reference_prefix: str = "KAM"
    premium_plan: str = "premium"
    premium_duration_days: int = 365

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def mode(self) -> str:
        """Provider mode label: LIVE in production, STAGING otherwise."""
        return "LIVE" if self.is_production else "STAGING"

    @property
    def webhook_url(self) -> str:
        if self.callback_url:
            return self.callback_url
        return f"{self.public_base_url.rstrip('/')}/api/payments/webhook/maviance"

    def return_url_for(self, reference: str) -> str:
        if self.return_url:
            return self.return_url.replace("{reference}", reference)
        return f"{self.public_base_url.rstrip('/')}/api/payments/verify/{reference}"


settings = Settings()


def get_settings() -> Settings:
    """Dependency returning the settings instance built at startup."""
    return settings
