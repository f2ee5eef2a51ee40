from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    app_name: str = "SafeCheck"

    # Storage (SQLite file, created on first use)
    db_path: str = "data/safecheck.db"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Escalation sweep
    escalation_enabled: bool = True
    escalation_interval_seconds: int = 300  # 5 minutes bounds worst-case alert delay
    escalation_batch_limit: int = 0  # 0 = no limit per sweep
    reminders_enabled: bool = True  # text owners at scheduled_time

    # Verification codes / links
    code_length: int = 4
    token_secret: str = "change-this-in-production"
    web_verification_url: str = "https://checkonme.app/verify"

    # Notification channels
    sms_enabled: bool = True
    email_enabled: bool = True
    sms_gateway_url: str = ""     # empty = log-only transport
    email_gateway_url: str = ""   # empty = log-only transport
    gateway_token: str = ""
    transport_timeout_seconds: float = 10.0


settings = Settings()
