"""Webhook subscriptions for capability and job events."""

from .dispatcher import WebhookDispatcher
from .manager import SubscriptionManager

__all__ = ["SubscriptionManager", "WebhookDispatcher"]
