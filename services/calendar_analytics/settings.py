"""
Settings and configuration for the Calendar Analytics Service.

Uses Pydantic Settings to manage environment variables and configuration.
"""

from typing import List, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Service configuration
    service_name: str = Field(
        default="calendar-analytics", description="Service name"
    )
    app_version: str = Field(default="0.1.0", description="Application version")
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(
        default=8000,
        description="Port to bind to",
        validation_alias=AliasChoices("PORT", "CALENDAR_ANALYTICS_PORT"),
    )
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )

    # Logging configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    # Microsoft identity platform (OAuth2 authorization-code flow)
    microsoft_client_id: Optional[str] = Field(
        default=None,
        description="Azure AD application (client) ID",
        validation_alias=AliasChoices("MICROSOFT_CLIENT_ID", "CLIENT_ID"),
    )
    microsoft_client_secret: Optional[str] = Field(
        default=None,
        description="Azure AD client secret",
        validation_alias=AliasChoices("MICROSOFT_CLIENT_SECRET", "CLIENT_SECRET"),
    )
    microsoft_tenant_id: str = Field(
        default="common",
        description="Azure AD tenant ID, or 'common' for multi-tenant apps",
        validation_alias=AliasChoices("MICROSOFT_TENANT_ID", "TENANT_ID"),
    )
    oauth_redirect_uri: str = Field(
        default="http://localhost:8000/v1/auth/callback",
        description="Redirect URI registered for the authorization-code flow",
    )
    oauth_scopes: str = Field(
        default="openid profile offline_access User.Read User.ReadBasic.All Calendars.ReadWrite",
        description="Space separated OAuth scopes requested at login",
    )
    microsoft_login_base_url: str = Field(
        default="https://login.microsoftonline.com",
        description="Microsoft identity platform base URL",
    )
    graph_base_url: str = Field(
        default="https://graph.microsoft.com/v1.0",
        description="Microsoft Graph API base URL",
    )

    # Frontend and browser integration
    frontend_url: str = Field(
        default="http://localhost:3000",
        description="Where the browser is sent after a successful login",
    )
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="Origins allowed to call the API with credentials",
    )
    access_token_cookie_name: str = Field(
        default="access_token", description="Cookie holding the Graph access token"
    )
    cookie_secure: bool = Field(
        default=False, description="Mark the access token cookie as Secure"
    )

    # Outbound HTTP
    request_timeout_seconds: float = Field(
        default=30.0, description="Timeout for calls to Microsoft endpoints"
    )
    calendar_page_size: int = Field(
        default=100, description="Page size requested from the calendar view"
    )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
