"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        frozen=True,
    )

    # Application
    app_name: str = "Comment Gateway"
    app_version: str = "3.0.0"
    debug: bool = False
    environment: Literal["development", "test", "production"] = "development"
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Execution environment tag. Prepended to list addresses, email subjects, etc.
    # so that non-production deployments never talk to production subscribers.
    exe_env: str | None = Field(default=None, alias="EXE_ENV")
    exe_env_production: str = Field(default="prod", alias="EXE_ENV_PRODUCTION")

    # API
    api_prefix: str = "/v3"
    public_url: str = Field(default="http://localhost:8080", alias="PUBLIC_URL")
    allowed_origins_str: str = Field(default="*", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> list[str]:
        """Parse allowed origins from string."""
        return [o.strip() for o in self.allowed_origins_str.split(",") if o.strip()]

    # Crypto
    rsa_private_key: str | None = Field(default=None, alias="RSA_PRIVATE_KEY")
    crypto_pepper: str | None = Field(default=None, alias="CRYPTO_PEPPER")
    confirmation_token_max_age_days: int = Field(default=30, ge=0)

    # Site repositories
    site_config_file: str = "staticman.yml"
    review_branch_prefix: str = "staticman_"

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # Email (Mailgun)
    email_api_key: str | None = Field(default=None, alias="EMAIL_API_KEY")
    email_domain: str = Field(default="staticman.net", alias="EMAIL_DOMAIN")
    email_from_address: str = Field(default="noreply@staticman.net", alias="EMAIL_FROM")
    email_from_name: str = Field(default="Staticman", alias="EMAIL_FROM_NAME")
    mailgun_base_url: str = "https://api.mailgun.net/v3"
    email_template_dir: Path = DEFAULT_TEMPLATE_DIR

    # GitHub
    github_token: str | None = Field(default=None, alias="GITHUB_TOKEN")
    github_base_url: str = Field(default="https://api.github.com", alias="GITHUB_BASE_URL")
    github_webhook_secret: str | None = Field(default=None, alias="GITHUB_WEBHOOK_SECRET")

    # GitLab
    gitlab_token: str | None = Field(default=None, alias="GITLAB_TOKEN")
    gitlab_base_url: str = Field(default="https://gitlab.com", alias="GITLAB_BASE_URL")
    gitlab_webhook_secret: str | None = Field(default=None, alias="GITLAB_WEBHOOK_SECRET")

    # Akismet (spam checking)
    akismet_enabled: bool = Field(default=False, alias="AKISMET_ENABLED")
    akismet_site: str | None = Field(default=None, alias="AKISMET_SITE")
    akismet_api_key: str | None = Field(default=None, alias="AKISMET_API_KEY")
    akismet_bypass_value: str | None = Field(default=None, alias="AKISMET_BYPASS_VALUE")

    @property
    def is_production_env(self) -> bool:
        """True when no environment tag needs to be shown to end users."""
        return not self.exe_env or self.exe_env == self.exe_env_production

    @property
    def env_tag_prefix(self) -> str:
        """Prefix for user-visible strings outside production, e.g. "dev - "."""
        if self.is_production_env:
            return ""
        return f"{self.exe_env} - "

    @property
    def encryption_enabled(self) -> bool:
        """Check if an RSA key is configured."""
        return bool(self.rsa_private_key)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
