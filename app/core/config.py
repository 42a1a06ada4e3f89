from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    database_ssl: bool = True

    # JWT (tokens are minted by the identity provider; we only verify them)
    secret_key: str
    access_token_expire_minutes: int = 15
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Booking rules
    default_timezone: str = "America/New_York"
    slot_step_minutes: int = 15
    # A pending request expires at min(start - lead, now + window)
    pending_response_window_minutes: int = 120
    pending_expiry_lead_minutes: int = 30

    # Time-based lifecycle trigger (auto-expiry, completion)
    lifecycle_sweep_enabled: bool = True
    lifecycle_sweep_interval_seconds: int = 300

    # Payment gateway
    payment_webhook_secret: str = ""
    payment_capture_url: str = ""

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "BraidsNow.com Team"
    email_logo_url: str = ""
    site_name: str = "BraidsNow.com"
    site_url: str = "https://braidsnow.com"
    contact_email: str = "support@braidsnow.com"

    # SMS (Twilio). Leave account sid empty to disable sending.
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token and self.twilio_from_number)


settings = Settings()
