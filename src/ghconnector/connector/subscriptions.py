"""Subscription records and the per-connector registry."""

import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

WILDCARD = "*"
"""Event selector matching every event type."""

Handler = Callable[[dict[str, Any]], Awaitable[None] | None]
"""A handler receives the merged subscription metadata and delivery body."""


@dataclass(frozen=True)
class Subscription:
    """A caller's registered interest in events from one repository.

    Event selectors are GitHub event names (``push``), event names
    qualified with an action (``issues.opened``), or the wildcard ``*``.
    A subscription for a single event is just the one-element case.

    Attributes:
        id: Subscription ID, unique within a connector
        owner: Repository owner (user or organization login)
        repo: Repository name
        events: Event selectors, in the order they were given
        handler: Callable invoked with the merged payload
    """

    id: str
    owner: str
    repo: str
    events: tuple[str, ...]
    handler: Handler

    @property
    def full_name(self) -> str:
        """Repository in "owner/name" format."""
        return f"{self.owner}/{self.repo}"

    def matches(self, owner: str, repo: str, event: str, action: str | None = None) -> bool:
        """Check whether a delivery for ``owner/repo`` and ``event`` is wanted."""
        if owner != self.owner or repo != self.repo:
            return False

        if WILDCARD in self.events or event in self.events:
            return True

        return action is not None and f"{event}.{action}" in self.events

    def webhook_events(self) -> tuple[str, ...]:
        """GitHub hook event names needed to receive this subscription's events."""
        names: dict[str, None] = {}
        for selector in self.events:
            names.setdefault(selector.split(".", 1)[0], None)
        return tuple(names)

    def metadata(self) -> dict[str, Any]:
        """Subscription fields merged into every handler payload."""
        return {
            "id": self.id,
            "owner": self.owner,
            "repo": self.repo,
            "events": list(self.events),
        }


def _normalize_events(events: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(events, str):
        events = [events]

    normalized: dict[str, None] = {}
    for event in events:
        event = event.strip()
        if event:
            normalized.setdefault(event, None)
    return tuple(normalized)


def group_by_repository(
    subscriptions: Iterable[Subscription],
) -> dict[tuple[str, str], tuple[str, ...]]:
    """Group subscriptions into webhook targets.

    Returns:
        Mapping of (owner, repo) to the union of hook event names for that
        repository, both in first-seen order
    """
    groups: dict[tuple[str, str], dict[str, None]] = {}
    for subscription in subscriptions:
        events = groups.setdefault((subscription.owner, subscription.repo), {})
        for name in subscription.webhook_events():
            events.setdefault(name, None)
    return {key: tuple(events) for key, events in groups.items()}


class SubscriptionRegistry:
    """Insertion-ordered mapping of subscription ID to Subscription.

    Owned by a single connector. Subscriptions are only added through
    ``register`` and only removed all at once by ``clear``.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def register(
        self,
        owner: str,
        repo: str,
        events: str | Iterable[str],
        handler: Handler,
        subscription_id: str | None = None,
    ) -> Subscription:
        """Register interest in events from ``owner/repo``.

        Args:
            owner: Repository owner
            repo: Repository name
            events: One selector or an iterable of selectors
            handler: Callable invoked for each matching delivery
            subscription_id: Explicit ID; generated when omitted

        Returns:
            The new, immutable Subscription

        Raises:
            ValueError: On empty owner, repo or events, a non-callable
                handler, or a duplicate ID
        """
        if not owner or not repo:
            raise ValueError("owner and repo are required")
        if not callable(handler):
            raise ValueError("handler must be callable")

        selectors = _normalize_events(events)
        if not selectors:
            raise ValueError(f"No event selectors given for {owner}/{repo}")

        if subscription_id is None:
            subscription_id = f"github/{owner}/{repo}/{uuid.uuid4().hex[:8]}"
        elif subscription_id in self._subscriptions:
            raise ValueError(f"Subscription {subscription_id} already registered")

        subscription = Subscription(
            id=subscription_id,
            owner=owner,
            repo=repo,
            events=selectors,
            handler=handler,
        )
        self._subscriptions[subscription.id] = subscription
        logger.debug(f"Registered subscription {subscription.id} for {', '.join(selectors)}")
        return subscription

    def get(self, subscription_id: str) -> Subscription | None:
        return self._subscriptions.get(subscription_id)

    def clear(self) -> None:
        self._subscriptions.clear()

    def __iter__(self) -> Iterator[Subscription]:
        return iter(list(self._subscriptions.values()))

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._subscriptions

    def matching(
        self, owner: str, repo: str, event: str, action: str | None = None
    ) -> list[Subscription]:
        """Subscriptions wanting this delivery, in registration order."""
        return [s for s in self._subscriptions.values() if s.matches(owner, repo, event, action)]
