"""Webhook reconciliation and event routing."""

from ghconnector.connector.connector import GitHubConnector
from ghconnector.connector.reconciler import ReconciliationError, WebhookReconciler
from ghconnector.connector.router import Delivery, EventRouter
from ghconnector.connector.subscriptions import Subscription, SubscriptionRegistry
from ghconnector.connector.validation import ConfigurationError

__all__ = [
    "GitHubConnector",
    "WebhookReconciler",
    "ReconciliationError",
    "ConfigurationError",
    "Delivery",
    "EventRouter",
    "Subscription",
    "SubscriptionRegistry",
]
