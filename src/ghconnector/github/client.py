"""GitHub API client using httpx."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"
"""Base URL for GitHub REST API v3."""


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class Webhook:
    """A GitHub repository webhook configuration.

    Represents a webhook registered on a repository, including its
    target URL, delivery settings, and subscribed events. ``url`` is the
    payload target from the hook's config; ``config_url`` is the API URL of
    the hook itself.
    """

    id: int
    name: str
    url: str
    config_url: str
    content_type: str
    insecure_ssl: str
    active: bool
    events: list[str]
    created_at: datetime

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Webhook":
        """Build a Webhook from a REST API hook object."""
        config = data.get("config") or {}
        return cls(
            id=data["id"],
            name=data.get("name", "web"),
            url=config.get("url", ""),
            config_url=data.get("url", ""),
            content_type=config.get("content_type", "form"),
            insecure_ssl=str(config.get("insecure_ssl", "0")),
            active=data.get("active", True),
            events=list(data.get("events") or []),
            created_at=_parse_timestamp(data["created_at"]),
        )


@dataclass
class WebhookDelivery:
    """A GitHub webhook delivery record.

    Represents a single delivery attempt of a webhook event,
    including response status and timing information.
    """

    id: int
    delivered_at: datetime
    status_code: int
    event: str
    action: str | None
    redelivery: bool


class GitHubClient:
    """GitHub API client for repository webhooks.

    Uses httpx for async HTTP requests. Must be used as an async context
    manager to properly initialize and cleanup the HTTP client.

    Example:
        async with GitHubClient(token) as client:
            hooks = await client.list_webhooks("owner/repo")
    """

    def __init__(self, token: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the GitHub client.

        Args:
            token: GitHub personal access token. If not provided, requests
                are sent unauthenticated.
            transport: Optional httpx transport, mainly for tests.
        """
        self.token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GitHubClient":
        """Initialize the HTTP client with GitHub API headers.

        Returns:
            The initialized GitHubClient instance
        """
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        self._client = httpx.AsyncClient(
            base_url=API_BASE,
            headers=headers,
            timeout=30.0,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args) -> None:
        """Close the HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get the underlying httpx client.

        Raises:
            RuntimeError: If accessed outside async context manager
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")
        return self._client

    async def list_webhooks(self, repo: str) -> list[Webhook]:
        """List all webhooks for a repository.

        Args:
            repo: Repository in "owner/name" format

        Raises:
            httpx.HTTPStatusError: If the API request fails
        """
        hooks = []
        page = 1
        per_page = 100

        while True:
            resp = await self.client.get(
                f"/repos/{repo}/hooks",
                params={"page": page, "per_page": per_page},
            )
            resp.raise_for_status()
            data = resp.json()

            hooks.extend(Webhook.from_api(h) for h in data)

            if len(data) < per_page:
                break
            page += 1

        return hooks

    async def create_webhook(
        self,
        repo: str,
        url: str,
        secret: str | None,
        events: list[str],
    ) -> Webhook:
        """Create a JSON webhook with TLS verification on a repository.

        The secret is left out of the hook config when not set, so GitHub
        sends unsigned deliveries.
        """
        config = {
            "url": url,
            "content_type": "json",
            "insecure_ssl": "0",
        }
        if secret:
            config["secret"] = secret

        resp = await self.client.post(
            f"/repos/{repo}/hooks",
            json={
                "name": "web",
                "active": True,
                "events": events,
                "config": config,
            },
        )
        resp.raise_for_status()
        return Webhook.from_api(resp.json())

    async def delete_webhook(self, repo: str, hook_id: int) -> None:
        """Delete a webhook from a repository."""
        resp = await self.client.delete(f"/repos/{repo}/hooks/{hook_id}")
        resp.raise_for_status()

    async def get_webhook_deliveries(
        self, repo: str, hook_id: int, count: int = 10
    ) -> list[WebhookDelivery]:
        """Get recent deliveries for a webhook."""
        resp = await self.client.get(
            f"/repos/{repo}/hooks/{hook_id}/deliveries",
            params={"per_page": count},
        )
        resp.raise_for_status()
        data = resp.json()

        return [
            WebhookDelivery(
                id=d["id"],
                delivered_at=_parse_timestamp(d["delivered_at"]),
                status_code=d.get("status_code", 0),
                event=d["event"],
                action=d.get("action"),
                redelivery=d.get("redelivery", False),
            )
            for d in data
        ]
