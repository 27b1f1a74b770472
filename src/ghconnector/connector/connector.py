"""Host-facing GitHub connector."""

import logging
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager

from ghconnector.connector.reconciler import WebhookAPI, WebhookReconciler
from ghconnector.connector.router import Delivery, EventRouter
from ghconnector.connector.subscriptions import Handler, Subscription, SubscriptionRegistry
from ghconnector.connector.validation import validate_base_url
from ghconnector.env import Settings, get_settings
from ghconnector.github.client import GitHubClient, Webhook

logger = logging.getLogger(__name__)

GitHubFactory = Callable[[Settings], AbstractAsyncContextManager[WebhookAPI]]


def default_github_factory(settings: Settings) -> GitHubClient:
    return GitHubClient(token=settings.gh_token or None)


class GitHubConnector:
    """Subscribes a host runtime to GitHub repository webhook events.

    Register subscriptions with ``on``, call ``start`` once at startup to make
    sure every subscribed repository has a webhook pointing here, then pass
    each inbound POST to ``handle``.

    Example:
        connector = GitHubConnector()
        connector.on("acme", "widgets", ["push", "release"], handle_event)
        await connector.start()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        github_factory: GitHubFactory | None = None,
    ):
        self.settings = settings or get_settings()
        self.github_factory = github_factory or default_github_factory
        self._registry = SubscriptionRegistry()
        self._router = EventRouter(self._registry, self.settings.webhook_secret)
        self.last_webhook: Webhook | None = None

    @property
    def webhook_path(self) -> str:
        path = self.settings.webhook_path
        return path if path.startswith("/") else "/" + path

    @property
    def callback_url(self) -> str:
        """Callback URL hooks are registered with.

        Raises:
            ConfigurationError: If the runtime base URL is missing or malformed
        """
        return self.settings.callback_url

    @property
    def subscriptions(self) -> tuple[Subscription, ...]:
        """Registered subscriptions, in registration order."""
        return tuple(self._registry)

    def get(self, subscription_id: str) -> Subscription | None:
        return self._registry.get(subscription_id)

    def on(
        self,
        owner: str,
        repo: str,
        events: str | Iterable[str],
        handler: Handler,
        subscription_id: str | None = None,
    ) -> Subscription:
        """Subscribe ``handler`` to events from ``owner/repo``.

        ``events`` is an event name, an ``event.action`` pair, ``*``, or a
        list of those. Must be called before ``start`` for the repository to
        get a webhook.
        """
        return self._registry.register(owner, repo, events, handler, subscription_id)

    async def start(self) -> list[Webhook]:
        """Reconcile repository webhooks with the registered subscriptions.

        Does nothing when there are no subscriptions.

        Raises:
            ConfigurationError: If the runtime base URL is missing or malformed
            ReconciliationError: If any repository could not be reconciled
        """
        if not len(self._registry):
            logger.info("No subscriptions registered, skipping webhook reconciliation")
            return []

        # Checked here as well so a bad URL fails before a client is opened
        validate_base_url(self.settings.runtime_base_url)

        async with self.github_factory(self.settings) as github:
            reconciler = WebhookReconciler(
                github,
                webhook_path=self.webhook_path,
                secret=self.settings.webhook_secret,
            )
            try:
                return await reconciler.reconcile(self._registry, self.settings.runtime_base_url)
            finally:
                self.last_webhook = reconciler.last_webhook

    async def handle(self, delivery: Delivery) -> bool:
        """Route one inbound delivery. False means the signature was rejected."""
        return await self._router.route(delivery)

    def stop(self) -> None:
        """Drop all subscriptions."""
        self._registry.clear()
