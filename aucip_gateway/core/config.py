"""
Configuration Settings.

This module defines the gateway configuration using Pydantic's BaseSettings.
It automatically loads all configuration from environment variables and .env file
without explicit dotenv loading.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# =====================================================================
# Grouped Configuration Models
# =====================================================================


class JobConfig(BaseModel):
    """Asynchronous job lifecycle configuration."""

    timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        alias="AUCIP_JOB_TIMEOUT_SECONDS",
        description="Maximum runtime of an in-progress job before it is failed with a timeout error",
    )
    retention_seconds: float = Field(
        default=3600.0,
        ge=0,
        alias="AUCIP_JOB_RETENTION_SECONDS",
        description="How long a terminal job stays queryable after completion",
    )

    model_config = {"populate_by_name": True}


class WebhookConfig(BaseModel):
    """Webhook delivery configuration."""

    timeout_seconds: float = Field(
        default=10.0, gt=0, alias="AUCIP_WEBHOOK_TIMEOUT_SECONDS", description="Per-attempt HTTP timeout"
    )
    max_attempts: int = Field(
        default=5, ge=1, alias="AUCIP_WEBHOOK_MAX_ATTEMPTS", description="Delivery attempts before abandoning"
    )
    backoff_initial: float = Field(
        default=0.5, ge=0, alias="AUCIP_WEBHOOK_BACKOFF_INITIAL", description="Initial backoff delay in seconds"
    )
    backoff_factor: float = Field(
        default=2.0, ge=1, alias="AUCIP_WEBHOOK_BACKOFF_FACTOR", description="Exponential backoff factor"
    )
    backoff_max: float = Field(
        default=8.0, ge=0, alias="AUCIP_WEBHOOK_BACKOFF_MAX", description="Maximum backoff delay in seconds"
    )

    model_config = {"populate_by_name": True}


class SubscriptionConfig(BaseModel):
    """Subscription lifecycle configuration."""

    default_seconds: int = Field(
        default=3600,
        gt=0,
        alias="AUCIP_SUBSCRIPTION_DEFAULT_SECONDS",
        description="Subscription lifetime used when the caller omits a duration",
    )
    max_seconds: int = Field(
        default=30 * 86400,
        gt=0,
        alias="AUCIP_SUBSCRIPTION_MAX_SECONDS",
        description="Upper bound on a requested subscription lifetime",
    )
    allowed_callback_schemes: list[str] = Field(
        default=["https"],
        alias="AUCIP_CALLBACK_SCHEMES",
        description="URL schemes accepted for webhook callbacks (encrypted transports only)",
    )

    model_config = {"populate_by_name": True}


# =====================================================================
# Main Settings Class
# =====================================================================


class Settings(BaseSettings):
    """
    Gateway settings model.

    All properties are automatically bound from environment variables and .env file.
    Pydantic's BaseSettings handles dotenv loading automatically via model_config.
    """

    # =====================================================================
    # Pydantic Configuration
    # =====================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=True,
        populate_by_name=True,
    )

    # =====================================================================
    # Gateway Identity
    # =====================================================================
    app_name: str = Field(default="AUCIP Gateway", alias="AUCIP_APP_NAME", description="Advertised application name")
    app_version: str = Field(default="1.0.0", alias="AUCIP_APP_VERSION", description="Advertised application version")
    protocol_version: str = Field(default="0.2", alias="AUCIP_PROTOCOL_VERSION", description="AUCIP protocol version")
    api_prefix: str = Field(
        default="/aucip/v1",
        alias="AUCIP_API_PREFIX",
        description="Path prefix used when building status locations",
    )

    # =====================================================================
    # Logging
    # =====================================================================
    log_level: str = Field(
        default="INFO",
        alias="AUCIP_LOG_LEVEL",
        description="Gateway logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    log_format: str = Field(default="detailed", alias="AUCIP_LOG_FORMAT", description="simple, detailed or json")
    log_file_dir: str = Field(default="logs", alias="AUCIP_LOG_FILE_DIR", description="Directory for the log file")
    enable_file_logging: bool = Field(
        default=False, alias="AUCIP_ENABLE_FILE_LOGGING", description="Also write logs to a file"
    )

    # =====================================================================
    # Validation / Batch
    # =====================================================================
    strict_schema: bool = Field(
        default=False,
        alias="AUCIP_STRICT_SCHEMA",
        description="Reject parameters that the capability schema does not declare",
    )
    batch_max_concurrency: int = Field(
        default=8,
        ge=1,
        alias="AUCIP_BATCH_MAX_CONCURRENCY",
        description="Maximum concurrently running operations in a best-effort batch",
    )

    # =====================================================================
    # Jobs
    # =====================================================================
    job_timeout_seconds: float = Field(default=300.0, gt=0, alias="AUCIP_JOB_TIMEOUT_SECONDS")
    job_retention_seconds: float = Field(default=3600.0, ge=0, alias="AUCIP_JOB_RETENTION_SECONDS")

    # =====================================================================
    # Subscriptions / Webhooks
    # =====================================================================
    subscription_default_seconds: int = Field(default=3600, gt=0, alias="AUCIP_SUBSCRIPTION_DEFAULT_SECONDS")
    subscription_max_seconds: int = Field(default=30 * 86400, gt=0, alias="AUCIP_SUBSCRIPTION_MAX_SECONDS")
    callback_schemes: list[str] = Field(default=["https"], alias="AUCIP_CALLBACK_SCHEMES")
    webhook_timeout_seconds: float = Field(default=10.0, gt=0, alias="AUCIP_WEBHOOK_TIMEOUT_SECONDS")
    webhook_max_attempts: int = Field(default=5, ge=1, alias="AUCIP_WEBHOOK_MAX_ATTEMPTS")
    webhook_backoff_initial: float = Field(default=0.5, ge=0, alias="AUCIP_WEBHOOK_BACKOFF_INITIAL")
    webhook_backoff_factor: float = Field(default=2.0, ge=1, alias="AUCIP_WEBHOOK_BACKOFF_FACTOR")
    webhook_backoff_max: float = Field(default=8.0, ge=0, alias="AUCIP_WEBHOOK_BACKOFF_MAX")

    # =====================================================================
    # Computed Properties (Grouped Configurations)
    # =====================================================================

    @property
    def jobs(self) -> JobConfig:
        """Get job lifecycle configuration."""
        return JobConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def webhooks(self) -> WebhookConfig:
        """Get webhook delivery configuration."""
        return WebhookConfig.model_validate(self.model_dump(by_alias=True))

    @property
    def subscriptions(self) -> SubscriptionConfig:
        """Get subscription lifecycle configuration."""
        return SubscriptionConfig.model_validate(self.model_dump(by_alias=True))

    def discovery_metadata(self, extra: Optional[dict] = None) -> dict:
        """Metadata block advertised alongside the capability catalog."""
        meta = {
            "app_name": self.app_name,
            "app_version": self.app_version,
            "aucip_version": self.protocol_version,
        }
        if extra:
            meta.update(extra)
        return meta


settings = Settings()
