"""Application settings loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self):
        self.app_name = os.getenv("APP_NAME", "Invoice Generator")
        self.api_version = "1.0.0"
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.secret_key = os.getenv("SECRET_KEY", "CHANGE_ME")
        self.SECRET_KEY = self.secret_key
        self.access_token_expire_minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15"))
        self.ACCESS_TOKEN_EXPIRE_MINUTES = self.access_token_expire_minutes
        self.refresh_token_expire_days = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./invoices.db")
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]

        # Outgoing mail
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = int(os.getenv("SMTP_PORT", "587"))
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_use_tls = _env_bool("SMTP_USE_TLS", True)
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")

        # Document rendering limits
        self.pdf_render_timeout_seconds = float(os.getenv("PDF_RENDER_TIMEOUT_SECONDS", "20"))
        self.pdf_render_workers = int(os.getenv("PDF_RENDER_WORKERS", "4"))
        self.pdf_max_document_bytes = int(os.getenv("PDF_MAX_DOCUMENT_BYTES", "2000000"))
        self.max_line_items = int(os.getenv("MAX_LINE_ITEMS", "500"))

    def is_production(self) -> bool:
        return self.environment.lower() == "production"


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
