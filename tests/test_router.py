"""Tests for inbound delivery routing."""

from unittest.mock import patch

import pytest

from conftest import SECRET, encode, push_payload, sign
from ghconnector.connector.router import Delivery, EventRouter
from ghconnector.connector.subscriptions import SubscriptionRegistry


class Recorder:
    """Collects the payloads a handler was called with."""

    def __init__(self):
        self.calls: list[dict] = []

    async def __call__(self, payload):
        self.calls.append(payload)


@pytest.fixture
def registry():
    """Create an empty subscription registry."""
    return SubscriptionRegistry()


def signed_delivery(event: str, payload: dict, secret: str = SECRET, **headers) -> Delivery:
    body = encode(payload)
    return Delivery(
        headers={"X-GitHub-Event": event, "X-Hub-Signature-256": sign(body, secret), **headers},
        body=body,
    )


async def test_dispatches_merged_payload(registry):
    """Test that body fields win over subscription fields on collision."""
    handler = Recorder()
    sub = registry.register("acme", "widgets", ["push", "release"], handler, subscription_id="sub-1")
    router = EventRouter(registry, SECRET)

    payload = push_payload(id="delivery-body-id")
    assert await router.route(signed_delivery("push", payload))

    assert len(handler.calls) == 1
    received = handler.calls[0]
    assert received["id"] == "delivery-body-id"
    assert received["owner"] == "acme"
    assert received["repo"] == sub.repo
    assert received["events"] == ["push", "release"]
    assert received["ref"] == "refs/heads/main"
    assert received["repository"]["name"] == "widgets"


async def test_dispatches_only_to_matching(registry):
    """Test that only subscriptions for the delivery's repository and event run."""
    widgets_push = Recorder()
    widgets_release = Recorder()
    gadgets_push = Recorder()
    registry.register("acme", "widgets", "push", widgets_push)
    registry.register("acme", "widgets", "release", widgets_release)
    registry.register("acme", "gadgets", "push", gadgets_push)
    router = EventRouter(registry, SECRET)

    assert await router.route(signed_delivery("push", push_payload()))

    assert len(widgets_push.calls) == 1
    assert widgets_release.calls == []
    assert gadgets_push.calls == []


async def test_wildcard_matches_any_event(registry):
    """Test that a wildcard subscription receives every event type."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    await router.route(signed_delivery("push", push_payload()))
    await router.route(signed_delivery("issues", push_payload(action="opened")))
    await router.route(signed_delivery("workflow_run", push_payload(action="completed")))

    assert len(handler.calls) == 3


async def test_event_action_selector(registry):
    """Test that an event.action subscription skips other actions."""
    handler = Recorder()
    registry.register("acme", "widgets", "issues.opened", handler)
    router = EventRouter(registry, SECRET)

    await router.route(signed_delivery("issues", push_payload(action="closed")))
    await router.route(signed_delivery("issues", push_payload(action="opened")))

    assert [c["action"] for c in handler.calls] == ["opened"]


async def test_invalid_signature_not_handled(registry):
    """Test that a bad signature returns False and dispatches nothing."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    assert not await router.route(signed_delivery("push", push_payload(), secret="wrong"))
    assert handler.calls == []


async def test_missing_signature_not_handled(registry):
    """Test that an unsigned delivery is rejected when a secret is set."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    delivery = Delivery(headers={"X-GitHub-Event": "push"}, body=encode(push_payload()))
    assert not await router.route(delivery)
    assert handler.calls == []


async def test_legacy_signature_header_accepted(registry):
    """Test that the legacy sha1 signature header is accepted."""
    handler = Recorder()
    registry.register("acme", "widgets", "push", handler)
    router = EventRouter(registry, SECRET)

    body = encode(push_payload())
    delivery = Delivery(
        headers={"X-GitHub-Event": "push", "X-Hub-Signature": sign(body, algo="sha1")},
        body=body,
    )
    assert await router.route(delivery)
    assert len(handler.calls) == 1


@pytest.mark.parametrize("headers", [{}, {"X-GitHub-Event": ""}, {"X-GitHub-Event": "ping"}])
async def test_no_actionable_event_skips_everything(registry, headers):
    """Test that ping or missing events succeed without verification or dispatch."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    with patch("ghconnector.connector.router.verify_signature") as verify:
        assert await router.route(Delivery(headers=headers, body=encode(push_payload(zen="hi"))))

    verify.assert_not_called()
    assert handler.calls == []


async def test_no_secret_skips_verification(registry):
    """Test that deliveries are not verified when no secret is configured."""
    handler = Recorder()
    registry.register("acme", "widgets", "push", handler)
    router = EventRouter(registry, secret="")

    delivery = Delivery(headers={"X-GitHub-Event": "push"}, body=encode(push_payload()))
    assert await router.route(delivery)
    assert len(handler.calls) == 1


async def test_handler_error_does_not_stop_others(registry):
    """Test that a failing handler is logged and the rest still run in order."""
    order = []

    async def failing(payload):
        order.append("failing")
        raise RuntimeError("boom")

    def sync_handler(payload):
        order.append("sync")

    async def last(payload):
        order.append("last")

    registry.register("acme", "widgets", "push", failing)
    registry.register("acme", "widgets", "*", sync_handler)
    registry.register("acme", "widgets", ["release", "push"], last)
    router = EventRouter(registry, SECRET)

    assert await router.route(signed_delivery("push", push_payload()))
    assert order == ["failing", "sync", "last"]


async def test_handler_mutation_not_seen_by_later_handlers(registry):
    """Test that each handler gets its own copy of nested payload objects."""
    seen = []

    def renaming(payload):
        payload["repository"]["name"] = "renamed"
        payload["repository"]["owner"]["login"] = "someone-else"

    def reader(payload):
        seen.append((payload["repository"]["owner"]["login"], payload["repository"]["name"]))

    registry.register("acme", "widgets", "push", renaming)
    registry.register("acme", "widgets", "push", reader)
    router = EventRouter(registry, SECRET)

    delivery = signed_delivery("push", push_payload())
    assert await router.route(delivery)

    assert seen == [("acme", "widgets")]
    assert delivery.payload["repository"]["name"] == "widgets"


async def test_invalid_json_matches_nothing(registry):
    """Test that a signed non-JSON body is acknowledged without dispatch."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    body = b"not json"
    delivery = Delivery(headers={"X-GitHub-Event": "push", "X-Hub-Signature-256": sign(body)}, body=body)
    assert await router.route(delivery)
    assert handler.calls == []


@pytest.mark.parametrize(
    "payload",
    [
        {"repository": "acme/widgets"},
        {"repository": {"name": "widgets", "owner": "acme"}},
        {"repository": {"name": "widgets", "owner": None}},
        {"repository": ["acme", "widgets"]},
    ],
)
async def test_malformed_repository_matches_nothing(registry, payload):
    """Test that a non-object repository or owner is acknowledged without dispatch."""
    handler = Recorder()
    registry.register("acme", "widgets", "*", handler)
    router = EventRouter(registry, SECRET)

    delivery = signed_delivery("push", payload)
    assert delivery.owner is None
    assert await router.route(delivery)
    assert handler.calls == []


def test_repo_of_string_repository_is_none():
    """Test that a string repository field yields no repo name."""
    delivery = Delivery(headers={"X-GitHub-Event": "push"}, body=encode({"repository": "acme/widgets"}))
    assert delivery.repo is None
    assert delivery.owner is None


def test_delivery_fields():
    """Test that event, delivery ID, owner, repo and action are read from the delivery."""
    delivery = signed_delivery(
        "issues",
        push_payload(owner="octo", repo="cat", action="opened"),
        **{"X-GitHub-Delivery": "abc"},
    )
    assert delivery.event == "issues"
    assert delivery.delivery_id == "abc"
    assert delivery.owner == "octo"
    assert delivery.repo == "cat"
    assert delivery.action == "opened"


def test_owner_falls_back_to_name():
    """Test that owner uses the legacy name field when login is absent."""
    payload = {"repository": {"name": "cat", "owner": {"name": "octo"}}}
    delivery = Delivery(headers={"X-GitHub-Event": "push"}, body=encode(payload))
    assert delivery.owner == "octo"
