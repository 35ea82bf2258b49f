"""
Shared configuration management for the Campus Portal services.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings.

    Environment variable names are the upper-cased field names
    (``GOOGLE_SHEET_ID``, ``GEMINI_API_KEY``, ...). Secrets default to empty
    strings; components check for them lazily at first use.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Spreadsheet store
    google_sheet_id: str = Field(default="")
    google_service_account_email: str = Field(default="")
    google_service_account_private_key: str = Field(default="")
    google_token_uri: str = Field(default="https://oauth2.googleapis.com/token")
    sheets_api_base: str = Field(default="https://sheets.googleapis.com/v4/spreadsheets")

    # Completion providers, in fallback order
    gemini_api_key: str = Field(default="")
    gemini_model: str = Field(default="gemini-1.5-flash")
    groq_api_key: str = Field(default="")
    groq_model: str = Field(default="deepseek-r1-distill-llama-70b")
    openrouter_api_key: str = Field(default="")
    openrouter_model: str = Field(default="qwen/qwen2.5-14b-instruct")
    app_base_url: str = Field(default="https://ifhe-campus-assistant.pages.dev")

    # Context search
    google_cse_id: str = Field(default="")
    google_cse_api_key: str = Field(default="")
    search_site: str = Field(default="ifheindia.org")
    search_max_results: int = Field(default=5)

    # Admin surface
    admin_api_key: str = Field(default="")
    admin_session_secret: str = Field(default="")
    admin_email: str = Field(default="admin@ifheindia.org")
    admin_session_ttl_seconds: int = Field(default=24 * 60 * 60)

    # Outbound timeouts
    http_timeout_seconds: float = Field(default=10.0)
    provider_timeout_seconds: float = Field(default=30.0)

    # Rate limiting (requests per window)
    rate_limit_window_seconds: float = Field(default=60.0)
    rate_limit_chat: int = Field(default=5)
    rate_limit_registration: int = Field(default=10)
    rate_limit_read: int = Field(default=20)
    rate_limit_admin: int = Field(default=30)

    def rate_limits(self) -> dict:
        """Per-class request limits keyed by limit type."""
        return {
            "chat": self.rate_limit_chat,
            "registration": self.rate_limit_registration,
            "read": self.rate_limit_read,
            "admin": self.rate_limit_admin,
        }


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
