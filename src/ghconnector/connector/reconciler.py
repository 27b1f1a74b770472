"""Startup reconciliation of repository webhooks.

Makes sure every repository with at least one subscription has a webhook
pointing at this runtime's callback URL, covering every event its
subscriptions asked for. A matching hook is reused as-is; otherwise a new
one is created. Existing hooks are never modified or deleted.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import Protocol

from ghconnector.connector.subscriptions import WILDCARD, Subscription, group_by_repository
from ghconnector.connector.validation import callback_url, validate_base_url
from ghconnector.github.client import Webhook

logger = logging.getLogger(__name__)


class WebhookAPI(Protocol):
    """The part of the GitHub client reconciliation needs."""

    async def list_webhooks(self, repo: str) -> list[Webhook]: ...

    async def create_webhook(
        self, repo: str, url: str, secret: str | None, events: list[str]
    ) -> Webhook: ...


class ReconciliationError(RuntimeError):
    """One or more repositories could not be reconciled.

    Attributes:
        failures: Exception raised for each failed (owner, repo)
        webhooks: Hooks reused or created for the repositories that succeeded
    """

    def __init__(
        self,
        failures: dict[tuple[str, str], BaseException],
        webhooks: list[Webhook],
    ):
        self.failures = failures
        self.webhooks = webhooks
        details = "; ".join(f"{owner}/{repo}: {err}" for (owner, repo), err in failures.items())
        super().__init__(f"Failed to reconcile webhooks for {len(failures)} repositories: {details}")


def covers(hook: Webhook, url: str, events: Iterable[str]) -> bool:
    """Check whether an existing hook already delivers ``events`` to ``url``.

    The hook must post JSON with TLS verification enabled. A hook subscribed
    to ``*`` covers every event.
    """
    if hook.url != url or hook.content_type != "json" or hook.insecure_ssl != "0":
        return False

    subscribed = set(hook.events)
    if WILDCARD in subscribed:
        return True
    return subscribed.issuperset(events)


class WebhookReconciler:
    """Ensures one webhook per subscribed repository.

    Args:
        github: Client used to list and create hooks
        webhook_path: Path component of the callback URL
        secret: Secret configured on created hooks, if any
    """

    def __init__(self, github: WebhookAPI, webhook_path: str, secret: str | None = None):
        self.github = github
        self.webhook_path = webhook_path
        self.secret = secret or None
        self.last_webhook: Webhook | None = None

    async def reconcile(self, subscriptions: Iterable[Subscription], base_url: str | None) -> list[Webhook]:
        """Reconcile remote webhooks with the given subscriptions.

        Repositories are processed concurrently and independently. A failure
        for one repository does not stop the others; all failures are
        reported together once every repository has been attempted.

        Args:
            subscriptions: Current subscriptions
            base_url: Public HTTPS origin of this runtime

        Returns:
            The reused or created hook for each repository, in the order the
            repositories were first subscribed to

        Raises:
            ConfigurationError: If ``base_url`` is missing or malformed. No
                API call is made in that case.
            ReconciliationError: If any repository failed
        """
        targets = group_by_repository(subscriptions)
        if not targets:
            return []

        url = callback_url(validate_base_url(base_url), self.webhook_path)

        results = await asyncio.gather(
            *(self._reconcile_repository(owner, repo, url, events) for (owner, repo), events in targets.items()),
            return_exceptions=True,
        )

        webhooks: list[Webhook] = []
        failures: dict[tuple[str, str], BaseException] = {}
        for key, result in zip(targets, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error(f"Webhook reconciliation failed for {key[0]}/{key[1]}: {result}")
                failures[key] = result
            else:
                webhooks.append(result)

        if failures:
            raise ReconciliationError(failures, webhooks)

        return webhooks

    async def _reconcile_repository(
        self, owner: str, repo: str, url: str, events: tuple[str, ...]
    ) -> Webhook:
        full_name = f"{owner}/{repo}"

        for hook in await self.github.list_webhooks(full_name):
            if covers(hook, url, events):
                logger.info(f"Reusing webhook {hook.id} on {full_name} for {', '.join(events)}")
                self.last_webhook = hook
                return hook

        hook = await self.github.create_webhook(
            repo=full_name,
            url=url,
            secret=self.secret,
            events=list(events),
        )
        logger.info(f"Created webhook {hook.id} on {full_name} for {', '.join(events)}")
        self.last_webhook = hook
        return hook
