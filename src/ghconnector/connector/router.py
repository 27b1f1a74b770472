"""Inbound webhook delivery routing."""

import copy
import inspect
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from ghconnector.connector.subscriptions import SubscriptionRegistry
from ghconnector.connector.validation import verify_signature

logger = logging.getLogger(__name__)

# Events GitHub sends for hook health checks rather than repository activity
NOOP_EVENTS = frozenset({"ping"})


@dataclass
class Delivery:
    """One inbound webhook POST.

    Attributes:
        headers: Request headers; keys are lowercased on creation
        body: Raw request body, used for signature verification
    """

    headers: Mapping[str, str]
    body: bytes = b""

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def event(self) -> str | None:
        """GitHub event name from the X-GitHub-Event header."""
        return self.headers.get("x-github-event") or None

    @property
    def delivery_id(self) -> str | None:
        return self.headers.get("x-github-delivery")

    @cached_property
    def payload(self) -> dict[str, Any]:
        """Decoded JSON body; empty when the body is empty or not a JSON object."""
        if not self.body:
            return {}

        try:
            data = json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Delivery {self.delivery_id} has an invalid JSON body")
            return {}

        if not isinstance(data, dict):
            logger.warning(f"Delivery {self.delivery_id} body is not a JSON object")
            return {}
        return data

    @property
    def action(self) -> str | None:
        action = self.payload.get("action")
        return action if isinstance(action, str) else None

    @property
    def repo(self) -> str | None:
        repository = self.payload.get("repository")
        if not isinstance(repository, dict):
            return None
        return repository.get("name")

    @property
    def owner(self) -> str | None:
        """Repository owner login (``name`` on some legacy payloads)."""
        repository = self.payload.get("repository")
        if not isinstance(repository, dict):
            return None
        owner = repository.get("owner")
        if not isinstance(owner, dict):
            return None
        return owner.get("login") or owner.get("name")


class EventRouter:
    """Dispatches verified deliveries to matching subscriptions.

    Args:
        registry: Subscriptions to route to; only read while routing
        secret: Webhook secret. When empty, signatures are not checked.
    """

    def __init__(self, registry: SubscriptionRegistry, secret: str | None = None):
        self.registry = registry
        self.secret = secret or None

    async def route(self, delivery: Delivery) -> bool:
        """Verify and dispatch one delivery.

        Handlers run one at a time in registration order, each with its own
        copy of the payload. An exception from one handler is logged and does
        not stop the remaining handlers.

        Returns:
            False if a secret is configured and the signature does not
            match (nothing is dispatched), True otherwise
        """
        event = delivery.event
        if not event or event in NOOP_EVENTS:
            logger.debug(f"Ignoring delivery {delivery.delivery_id} without an actionable event ({event})")
            return True

        if self.secret and not verify_signature(self.secret, delivery.body, delivery.headers):
            logger.error(f"Invalid signature on delivery {delivery.delivery_id} ({event})")
            return False

        payload = delivery.payload
        owner, repo, action = delivery.owner, delivery.repo, delivery.action
        if not owner or not repo:
            logger.debug(f"Delivery {delivery.delivery_id} ({event}) has no repository")
            return True

        matches = self.registry.matching(owner, repo, event, action)
        logger.info(
            f"Delivery {delivery.delivery_id}: {event}"
            f"{'.' + action if action else ''} on {owner}/{repo} "
            f"matched {len(matches)} subscription(s)"
        )

        for subscription in matches:
            try:
                result = subscription.handler({**subscription.metadata(), **copy.deepcopy(payload)})
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Handler for subscription {subscription.id} failed: {e}")

        return True
