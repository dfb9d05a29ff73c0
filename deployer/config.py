"""Application configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file and override existing env vars
load_dotenv(override=True)

PROJECT_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Storage layout: builds live in <data_dir>/builds, local apps in <data_dir>/apps
    data_dir: str = "data"

    # Deployment target used when a project does not override it
    deploy_target: Literal["local", "cloudflare", "r2"] = "local"

    # Platform AI (metadata inference, source rewrites)
    anthropic_api_key: str = Field(default="")
    ai_model: str = "sonnet"
    ai_timeout_seconds: float = 60.0

    # Proxy that GenAI client SDKs are retargeted to
    genai_proxy_base_url: str = "https://api.example.com/genai"

    # Cloudflare Pages
    cloudflare_account_id: str = Field(default="")
    cloudflare_api_token: str = Field(default="")
    cloudflare_pages_project_prefix: str = "deploy-your-app"

    # Cloudflare R2 (falls back to the Cloudflare account id)
    r2_account_id: str = Field(default="")
    r2_access_key_id: str = Field(default="")
    r2_secret_access_key: str = Field(default="")
    r2_bucket_name: str = Field(default="")

    # Root domain that the edge gateway serves apps under (<slug>.<domain>)
    apps_root_domain: str = "example.com"

    # Outbound HTTP
    http_timeout_seconds: float = 60.0

    # Install/build subprocesses
    build_timeout_seconds: float = 900.0

    # Live log streams
    stream_keepalive_seconds: float = 15.0

    # How long finished deployments and unused analysis sessions are kept
    deployment_ttl_hours: int = 24

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"
    log_directory: str = "logs"
    log_file_name: str = "deployer.log"

    @field_validator("deploy_target", mode="before")
    @classmethod
    def _fallback_deploy_target(cls, value: object) -> object:
        # Keep the product usable if the env var is misconfigured
        if isinstance(value, str) and value.strip().lower() in ("local", "cloudflare", "r2"):
            return value.strip().lower()
        return "local"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def data_path(self) -> Path:
        path = Path(self.data_dir)
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        return path

    @property
    def builds_root(self) -> Path:
        """Directory holding per-deployment and per-analysis working dirs."""
        return self.data_path / "builds"

    @property
    def static_root(self) -> Path:
        """Directory served at /apps for the local provider."""
        return self.data_path / "apps"

    @property
    def effective_r2_account_id(self) -> str:
        return self.r2_account_id or self.cloudflare_account_id


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
