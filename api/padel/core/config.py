"""Application configuration from environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Padel Community"
    debug: bool = True
    secret_key: str = "dev-secret-change-in-production"
    api_prefix: str = "/api"
    log_level: str = "INFO"
    # Local time used when expanding weekly session templates
    timezone: str = "Asia/Dubai"

    # Database
    database_url: str = "postgresql+asyncpg://padel:padel@db:5432/padel"
    database_echo: bool = False

    # Redis
    redis_url: str = "redis://redis:6379/0"

    # Auth
    access_token_expire_minutes: int = 60 * 24 * 7
    refresh_token_expire_days: int = 30
    jwt_algorithm: str = "HS256"

    # OTP
    otp_expiry_minutes: int = 10
    otp_max_attempts: int = 3
    otp_dev_mode: bool = False
    pending_registration_expiry_minutes: int = 15

    # Email / SMTP
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@padelcommunity.app"

    # Stripe (test mode)
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "aed"
    platform_fee_percent: float = 7.5

    # Twilio (WhatsApp OTP)
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from: str = "whatsapp:+14155238886"
    twilio_content_sid: str = ""

    # Apple Push Notification service
    apns_key_path: str = ""
    apns_key_id: str = ""
    apns_team_id: str = ""
    apns_bundle_id: str = "com.padelcommunity.app"
    apns_production: bool = False

    model_config = {"env_prefix": "PC_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
