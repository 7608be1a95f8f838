from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Application-level settings for the Control Center API.

    This is separate from control_center.db.config.Settings, which focuses on the database layer.
    Third-party relay settings are optional; relays report "not configured" when unset.
    """

    # FastAPI metadata
    APP_NAME: str = Field(default="Control Center API")
    APP_DESCRIPTION: str = Field(
        default=(
            "Backend API for the Control Center multi-tenant admin dashboard. "
            "Manages sites, integrations, billing, mail, and social accounts."
        )
    )
    APP_VERSION: str = Field(default="1.0.0")

    # CORS
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"],
        description="Comma-separated list or JSON array of allowed origins. Default: *",
    )
    CORS_ALLOW_CREDENTIALS: bool = Field(default=True)
    CORS_ALLOW_METHODS: List[str] = Field(default_factory=lambda: ["*"])
    CORS_ALLOW_HEADERS: List[str] = Field(default_factory=lambda: ["*"])

    # Startup behavior
    RUN_MIGRATIONS_ON_STARTUP: bool = Field(
        default=True,
        description="If true, run Alembic migrations (upgrade head) at app startup.",
    )
    AUTO_SEED: bool = Field(
        default=False,
        description="If true, run minimal database seeding after migrations.",
    )

    DEFAULT_TENANT_SLUG: str = Field(default="control-center")

    # Auth
    JWT_SECRET_KEY: str = Field(default="change-me", description="HMAC secret used to sign JWTs")
    JWT_ALGORITHM: str = Field(default="HS256")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=30)
    REFRESH_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7)

    # AI chat relay
    AI_GATEWAY_URL: str = Field(default="https://ai.gateway.lovable.dev/v1/chat/completions")
    AI_GATEWAY_API_KEY: Optional[str] = Field(default=None)
    AI_MODEL: str = Field(default="google/gemini-2.5-flash")

    # Slack / SendGrid relays
    SLACK_WEBHOOK_URL: Optional[str] = Field(default=None)
    SENDGRID_API_KEY: Optional[str] = Field(default=None)
    SENDGRID_API_URL: str = Field(default="https://api.sendgrid.com/v3/mail/send")
    DEFAULT_SENDER_EMAIL: str = Field(default="noreply@controlcenter.local")

    # GitHub
    GITHUB_API_URL: str = Field(default="https://api.github.com")
    GITHUB_TOKEN: Optional[str] = Field(default=None)

    # WhatsApp Cloud API
    WHATSAPP_GRAPH_URL: str = Field(default="https://graph.facebook.com/v18.0")
    WHATSAPP_ACCESS_TOKEN: Optional[str] = Field(default=None)
    WHATSAPP_PHONE_NUMBER_ID: Optional[str] = Field(default=None)
    WHATSAPP_WEBHOOK_VERIFY_TOKEN: str = Field(default="control-center-verify")

    # Outbound HTTP timeout (seconds) for relays
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0)

    # Environment label
    ENVIRONMENT: Optional[str] = Field(
        default=None, description="Environment label (dev/test/prod)"
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        """
        Accept both JSON array format and comma-separated formats for CORS origins.
        """
        if v is None:
            return ["*"]
        if isinstance(v, str):
            parts = [p.strip() for p in v.split(",") if p.strip()]
            return parts or ["*"]
        if isinstance(v, list):
            return v or ["*"]
        return ["*"]


# PUBLIC_INTERFACE
def get_app_settings() -> AppSettings:
    """
    Return a new AppSettings instance populated from environment variables.

    A fresh instance is built on each call so tests can patch the environment.
    """
    return AppSettings()
