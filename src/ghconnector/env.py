"""Configuration loading for the GitHub connector.

Follows the same chain as the rest of the tooling: env → credentials file → config file.
"""

import os
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()

# Config directory
CONFIG_DIR = Path.home() / ".ghconnector"
CONFIG_FILE = CONFIG_DIR / "config.yml"
CREDENTIALS_FILE = CONFIG_DIR / "credentials"

DEFAULT_WEBHOOK_PATH = "/reshuffle-github-connector/webhook"


class ServerConfig(BaseSettings):
    """Server configuration.

    The server always runs one worker so startup reconciliation happens once.
    """

    model_config = SettingsConfigDict(extra="ignore")

    port: int = Field(default=8787, description="Server port")
    host: str = Field(default="0.0.0.0", description="Server host")


class SubscriptionConfig(BaseModel):
    """A subscription declared in config.yml.

    ``handler`` is an import path in ``package.module:function`` form.
    """

    owner: str
    repo: str
    events: list[str] = Field(default_factory=lambda: ["*"])
    handler: str
    id: str | None = None


class Settings(BaseSettings):
    """Main settings class combining all configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GHCONNECTOR_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Credentials (loaded via get_credential)
    webhook_secret: str = Field(default="")
    gh_token: str = Field(default="")

    # Public origin GitHub posts deliveries to, e.g. https://runtime.example
    runtime_base_url: str = Field(default="")
    webhook_path: str = Field(default=DEFAULT_WEBHOOK_PATH)

    # Nested configs (loaded from file)
    server: ServerConfig = Field(default_factory=ServerConfig)
    subscriptions: list[SubscriptionConfig] = Field(default_factory=list)

    @property
    def callback_url(self) -> str:
        """Full URL GitHub delivers webhook events to.

        Raises:
            ConfigurationError: If the runtime base URL is missing or malformed
        """
        from ghconnector.connector.validation import callback_url, validate_base_url

        return callback_url(validate_base_url(self.runtime_base_url), self.webhook_path)


def load_config_file() -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not CONFIG_FILE.exists():
        return {}

    with open(CONFIG_FILE) as f:
        return yaml.safe_load(f) or {}


def load_credentials_file() -> dict[str, str]:
    """Load credentials from file."""
    if not CREDENTIALS_FILE.exists():
        return {}

    creds = {}
    with open(CREDENTIALS_FILE) as f:
        for line in f:
            line = line.strip()
            if line and "=" in line:
                key, value = line.split("=", 1)
                creds[key.strip()] = value.strip()
    return creds


def get_credential(key: str) -> str:
    """Get a credential by key.

    Checks in order: environment variable → credentials file.
    """
    value = os.getenv(key)
    if value:
        return value

    creds = load_credentials_file()
    return creds.get(key, "")


def ensure_config_dir() -> None:
    """Ensure config directory exists."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def create_default_config() -> None:
    """Create default config file if it doesn't exist."""
    ensure_config_dir()
    if CONFIG_FILE.exists():
        return

    default_config = {
        "runtime_base_url": None,
        "webhook_path": DEFAULT_WEBHOOK_PATH,
        "server": {
            "port": 8787,
        },
        "subscriptions": [],
    }

    with open(CONFIG_FILE, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Credentials come from the environment or the credentials file; everything
    else from config.yml, with GHCONNECTOR_* environment variables taking
    precedence over the file for the top-level values.
    """
    config_data = load_config_file()

    server_config = ServerConfig(**(config_data.get("server") or {}))
    subscriptions = [SubscriptionConfig(**entry) for entry in config_data.get("subscriptions") or []]

    overrides: dict[str, Any] = {}
    for key in ("runtime_base_url", "webhook_path"):
        env_value = os.getenv(f"GHCONNECTOR_{key.upper()}")
        if env_value:
            overrides[key] = env_value
        elif config_data.get(key):
            overrides[key] = config_data[key]

    return Settings(
        webhook_secret=get_credential("GHCONNECTOR_WEBHOOK_SECRET"),
        gh_token=get_credential("GH_TOKEN"),
        server=server_config,
        subscriptions=subscriptions,
        **overrides,
    )


def validate_required_credentials() -> list[str]:
    """Check for required settings and return list of missing ones.

    Only the base URL is required, and only once subscriptions exist. The
    token and secret are optional (public repos, unsigned deliveries).
    """
    settings = get_settings()
    missing = []

    if settings.subscriptions and not settings.runtime_base_url:
        missing.append("runtime_base_url (config.yml or GHCONNECTOR_RUNTIME_BASE_URL)")

    return missing
