"""Process-wide configuration and logging for the gateway."""

from .config import JobConfig, Settings, SubscriptionConfig, WebhookConfig, settings
from .logging_config import get_logger, setup_logging

__all__ = [
    "Settings",
    "JobConfig",
    "WebhookConfig",
    "SubscriptionConfig",
    "settings",
    "get_logger",
    "setup_logging",
]
