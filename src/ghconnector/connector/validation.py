"""Base URL validation and webhook signature verification."""

import hashlib
import hmac
import logging
import re
from collections.abc import Mapping

logger = logging.getLogger(__name__)

# https://host[:port] with nothing after it but an optional trailing slash
BASE_URL_PATTERN = re.compile(r"^https://[A-Za-z0-9](?:[A-Za-z0-9.-]*[A-Za-z0-9])?(?::(?P<port>\d{1,5}))?/?$")

MAX_PORT = 65535

SIGNATURE_HEADERS = (
    ("x-hub-signature-256", "sha256", hashlib.sha256),
    ("x-hub-signature", "sha1", hashlib.sha1),
)
"""Signature headers in order of preference: current first, legacy second."""


class ConfigurationError(ValueError):
    """Raised when the connector is configured in a way it cannot start with."""


def validate_base_url(url: str | None) -> str:
    """Check that ``url`` is a bare HTTPS origin and return it normalized.

    Accepts ``https://host`` or ``https://host:port``, optionally with one
    trailing slash, which is stripped.

    Raises:
        ConfigurationError: If the URL is missing, not HTTPS, or carries a
            path, query, fragment or credentials.
    """
    if not url:
        raise ConfigurationError("runtime base URL is not configured")

    match = BASE_URL_PATTERN.match(url)
    port = match.group("port") if match else None
    if not match or (port is not None and not 0 < int(port) <= MAX_PORT):
        raise ConfigurationError(
            f"Invalid runtime base URL {url!r}: expected https://host[:port] with no path or query"
        )

    return url.rstrip("/")


def callback_url(base_url: str, webhook_path: str) -> str:
    """Join the runtime base URL and the webhook path."""
    if not webhook_path.startswith("/"):
        webhook_path = "/" + webhook_path
    return base_url.rstrip("/") + webhook_path


def verify_signature(secret: str, body: bytes, headers: Mapping[str, str]) -> bool:
    """Verify a GitHub webhook signature over the raw body.

    Prefers ``X-Hub-Signature-256`` and falls back to the legacy SHA-1
    ``X-Hub-Signature`` header when only that one is present.

    Args:
        secret: Webhook secret configured on the hook
        body: Raw request body, exactly as received
        headers: Request headers, keys lowercased

    Returns:
        True if a signature header is present and matches, False otherwise
    """
    for header, algo, digest in SIGNATURE_HEADERS:
        provided = headers.get(header)
        if not provided:
            continue

        if not provided.startswith(f"{algo}="):
            logger.warning(f"Unsupported signature format in {header}")
            return False

        expected = f"{algo}=" + hmac.new(secret.encode(), body, digest).hexdigest()

        # Constant-time comparison
        return hmac.compare_digest(expected, provided)

    logger.warning("Missing signature header")
    return False
