"""Load subscription handlers declared in config.yml."""

import importlib
import logging
from collections.abc import Iterable

from ghconnector.connector import GitHubConnector, Subscription
from ghconnector.connector.subscriptions import Handler
from ghconnector.env import SubscriptionConfig

logger = logging.getLogger(__name__)


def load_handler(spec: str) -> Handler:
    """Import a handler from a ``package.module:function`` path.

    Raises:
        ValueError: If the path is malformed or does not name a callable
        ImportError: If the module cannot be imported
        AttributeError: If the module has no such attribute
    """
    module_name, sep, attr_path = spec.partition(":")
    if not sep or not module_name or not attr_path:
        raise ValueError(f"Invalid handler {spec!r}: expected 'package.module:function'")

    target = importlib.import_module(module_name)
    for attr in attr_path.split("."):
        target = getattr(target, attr)

    if not callable(target):
        raise ValueError(f"Handler {spec!r} is not callable")

    return target


def register_from_config(
    connector: GitHubConnector, entries: Iterable[SubscriptionConfig]
) -> list[Subscription]:
    """Register each configured subscription on the connector."""
    subscriptions = []
    for entry in entries:
        subscription = connector.on(
            entry.owner,
            entry.repo,
            entry.events,
            load_handler(entry.handler),
            subscription_id=entry.id,
        )
        logger.info(f"Subscribed {entry.handler} to {subscription.full_name}: {', '.join(subscription.events)}")
        subscriptions.append(subscription)
    return subscriptions
