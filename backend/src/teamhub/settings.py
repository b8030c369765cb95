"""Application settings and configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from teamhub.errors import ConfigurationError

_INSECURE_JWT_DEFAULTS = {"change-me-in-production", "secret"}

DEFAULT_PRICE_PLANS = {
    "price_team_monthly": "monthly",
    "price_team_6_month": "6-month",
    "price_team_12_month": "12-month",
}


class Settings(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "teamhub"
    env: str = "development"
    log_level: str = "INFO"
    log_format: str = "console"  # console | json
    allowed_origins: str = "http://localhost:3000"
    app_base_url: str = "http://localhost:3000"  # Invite deep links point here

    # Database
    database_url: str = "sqlite:///./teamhub.db"

    # Identity provider (HS256 bearer tokens, `sub` = user id)
    identity_jwt_secret: str = "change-me-in-production"
    identity_jwt_algorithm: str = "HS256"

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_webhook_tolerance_seconds: int = 300
    stripe_price_plans: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PRICE_PLANS))

    # Email (SendGrid)
    sendgrid_api_key: str | None = None
    sendgrid_from_email: str = "noreply@teamhub.local"
    sendgrid_from_name: str = "TeamHub"

    # Teams
    invite_expiry_days: int = 7
    trial_period_days: int = 7
    rotate_invite_token_on_resend: bool = False

    # Webhook idempotency ledger
    webhook_event_retention_days: int = 30
    webhook_claim_timeout_seconds: int = 300

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    def require_stripe(self) -> None:
        """Fail fast when the payment provider is not configured.

        Raises:
            ConfigurationError: naming every missing key
        """
        missing = [
            name
            for name in ("stripe_secret_key", "stripe_webhook_secret")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                "Stripe is not configured: missing " + ", ".join(k.upper() for k in missing)
            )

    def require_secure_identity(self) -> None:
        """Refuse to run production with a guessable identity secret."""
        if not self.is_production:
            return
        secret = self.identity_jwt_secret
        if secret in _INSECURE_JWT_DEFAULTS or len(secret) < 32:
            raise ConfigurationError(
                "IDENTITY_JWT_SECRET is insecure or too short (min 32 chars)"
            )


# Global settings instance
settings = Settings()
