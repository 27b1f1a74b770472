"""Shared test fixtures."""

import hashlib
import hmac
import json
from datetime import datetime, timezone

import pytest

from ghconnector.env import Settings
from ghconnector.github.client import Webhook

BASE_URL = "https://runtime.example"
CALLBACK_URL = "https://runtime.example/reshuffle-github-connector/webhook"
SECRET = "s3cret"


def make_hook(
    hook_id: int = 1,
    url: str = CALLBACK_URL,
    events: list[str] | None = None,
    content_type: str = "json",
    insecure_ssl: str = "0",
) -> Webhook:
    return Webhook(
        id=hook_id,
        name="web",
        url=url,
        config_url=f"https://api.github.com/repos/acme/widgets/hooks/{hook_id}",
        content_type=content_type,
        insecure_ssl=insecure_ssl,
        active=True,
        events=events if events is not None else ["push"],
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def sign(body: bytes, secret: str = SECRET, algo: str = "sha256") -> str:
    digest = hashlib.sha256 if algo == "sha256" else hashlib.sha1
    return f"{algo}=" + hmac.new(secret.encode(), body, digest).hexdigest()


def push_payload(owner: str = "acme", repo: str = "widgets", **extra) -> dict:
    return {
        "ref": "refs/heads/main",
        "repository": {"name": repo, "full_name": f"{owner}/{repo}", "owner": {"login": owner}},
        **extra,
    }


def encode(payload: dict) -> bytes:
    return json.dumps(payload).encode()


class FakeGitHub:
    """In-memory stand-in for GitHubClient's webhook calls."""

    def __init__(self, hooks: dict[str, list[Webhook]] | None = None, fail: set[str] | None = None):
        self.hooks = hooks or {}
        self.fail = fail or set()
        self.list_calls: list[str] = []
        self.create_calls: list[dict] = []
        self.entered = False

    async def __aenter__(self) -> "FakeGitHub":
        self.entered = True
        return self

    async def __aexit__(self, *args) -> None:
        pass

    async def list_webhooks(self, repo: str) -> list[Webhook]:
        self.list_calls.append(repo)
        if repo in self.fail:
            raise RuntimeError(f"403 Forbidden for {repo}")
        return list(self.hooks.get(repo, []))

    async def create_webhook(self, repo: str, url: str, secret: str | None, events: list[str]) -> Webhook:
        self.create_calls.append({"repo": repo, "url": url, "secret": secret, "events": events})
        hook = make_hook(hook_id=100 + len(self.create_calls), url=url, events=list(events))
        self.hooks.setdefault(repo, []).append(hook)
        return hook


@pytest.fixture
def settings():
    """Settings with a valid base URL and a webhook secret."""
    return Settings(runtime_base_url=BASE_URL, webhook_secret=SECRET)


@pytest.fixture
def github():
    """Create a fake GitHub client with no existing hooks."""
    return FakeGitHub()
