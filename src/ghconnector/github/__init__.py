"""GitHub REST client for repository webhooks."""

from ghconnector.github.client import GitHubClient, Webhook, WebhookDelivery

__all__ = ["GitHubClient", "Webhook", "WebhookDelivery"]
