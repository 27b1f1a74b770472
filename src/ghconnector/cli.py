"""ghconnector CLI - Command line interface."""

import asyncio
import sys
from typing import Any

import click

from ghconnector import __version__
from ghconnector.connector import ConfigurationError
from ghconnector.connector.validation import validate_base_url
from ghconnector.env import (
    get_settings,
    get_credential,
    load_credentials_file,
    validate_required_credentials,
    create_default_config,
    ensure_config_dir,
    CREDENTIALS_FILE,
    CONFIG_FILE,
)


@click.group()
@click.version_option(version=__version__, prog_name="ghconnector")
def cli() -> None:
    """ghconnector - GitHub webhook connector

    Subscribe handlers to GitHub repository events.
    """
    pass


def _write_credentials(creds: dict[str, str]) -> None:
    with open(CREDENTIALS_FILE, "w") as f:
        for k, v in creds.items():
            f.write(f"{k}={v}\n")
    CREDENTIALS_FILE.chmod(0o600)


@cli.command()
@click.option("--set", "set_credential", help="Set a single credential (KEY=VALUE)")
def config(set_credential: str | None) -> None:
    """Configure credentials and the runtime base URL.

    Prompts for each credential and saves to ~/.ghconnector/credentials.
    Press Enter to keep existing values. Credentials are stored with 600 permissions.

    \b
    Credentials:
      GHCONNECTOR_WEBHOOK_SECRET  Webhook signature secret (optional)
      GH_TOKEN                    GitHub token with admin:repo_hook scope

    \b
    Set a single credential:
      ghconnector config --set GH_TOKEN=<token>
    """
    import yaml

    ensure_config_dir()

    if set_credential:
        if "=" not in set_credential:
            click.secho("Error: Use format KEY=VALUE", fg="red")
            sys.exit(1)
        key, value = set_credential.split("=", 1)
        key = key.strip()

        creds = load_credentials_file()
        creds[key] = value.strip()
        _write_credentials(creds)
        click.echo(f"Set {key} in {CREDENTIALS_FILE}")
        return

    # Interactive mode - collect all credentials
    creds = load_credentials_file()
    for key, description in [
        ("GHCONNECTOR_WEBHOOK_SECRET", "webhook secret"),
        ("GH_TOKEN", "GitHub token"),
    ]:
        existing = get_credential(key)
        prompt_text = f"{key} ({description})"
        if existing:
            prompt_text += " [configured]"
        val = click.prompt(prompt_text, default="", hide_input=True, show_default=False)
        if val:
            creds[key] = val
        elif existing:
            creds[key] = existing

    _write_credentials(creds)
    click.echo(f"Saved credentials: {CREDENTIALS_FILE}")

    click.echo()
    create_default_config()
    with open(CONFIG_FILE) as f:
        config_data: dict[str, Any] = yaml.safe_load(f) or {}

    current_url = config_data.get("runtime_base_url") or ""
    while True:
        url_input = click.prompt(
            "Runtime base URL (e.g. https://runtime.example)",
            default=current_url,
            show_default=bool(current_url),
        )
        if not url_input:
            break
        try:
            url_input = validate_base_url(url_input)
            break
        except ConfigurationError as e:
            click.secho(str(e), fg="red")

    config_data["runtime_base_url"] = url_input or None

    with open(CONFIG_FILE, "w") as f:
        yaml.dump(config_data, f, default_flow_style=False)
    click.echo(f"Saved config: {CONFIG_FILE}")


@cli.command()
@click.option("--dev", is_flag=True, help="Enable development mode with auto-reload")
@click.option("--port", type=int, help="Override server port")
@click.option("--host", type=str, help="Override server host")
def server(dev: bool, port: int | None, host: str | None) -> None:
    """Start the webhook server."""
    import uvicorn

    create_default_config()

    missing = validate_required_credentials()
    if missing:
        click.secho("Missing required settings:", fg="red")
        for item in missing:
            click.echo(f"  - {item}")
        click.echo("\nRun 'ghconnector config' to configure.")
        sys.exit(1)

    settings = get_settings()

    server_port = port or settings.server.port
    server_host = host or settings.server.host

    click.secho(f"Starting ghconnector on {server_host}:{server_port}", fg="green")
    click.echo(f"  Webhook path: {settings.webhook_path}")
    click.echo(f"  Subscriptions: {len(settings.subscriptions)}")

    if dev:
        click.echo("Development mode enabled (auto-reload)")

    uvicorn.run(
        "ghconnector.server.app:build_app",
        factory=True,
        host=server_host,
        port=server_port,
        reload=dev,
    )


async def _find_connector_webhook(github, repo: str, webhook_url: str):
    """Find the webhook on ``repo`` delivering to ``webhook_url``, if any."""
    hooks = await github.list_webhooks(repo)
    for hook in hooks:
        if hook.url == webhook_url:
            return hook
    return None


def _callback_url_or_exit() -> str:
    settings = get_settings()
    try:
        return settings.callback_url
    except ConfigurationError as e:
        click.secho(f"Error: {e}. Run 'ghconnector config' first.", fg="red")
        sys.exit(1)


@cli.group()
def webhook() -> None:
    """Inspect GitHub webhooks registered for this runtime."""
    pass


@webhook.command("sync")
def webhook_sync() -> None:
    """Reconcile webhooks for the subscriptions in config.yml without serving."""
    from ghconnector.connector import GitHubConnector, ReconciliationError
    from ghconnector.server.loader import register_from_config

    connector = GitHubConnector(get_settings())
    register_from_config(connector, connector.settings.subscriptions)
    if not connector.subscriptions:
        click.secho(f"No subscriptions configured in {CONFIG_FILE}", fg="yellow")
        return

    try:
        hooks = asyncio.run(connector.start())
    except ConfigurationError as e:
        click.secho(f"Error: {e}", fg="red")
        sys.exit(1)
    except ReconciliationError as e:
        hooks = e.webhooks
        for (owner, repo), err in e.failures.items():
            click.secho(f"  {owner}/{repo}: {err}", fg="red")

    for hook in hooks:
        click.secho(f"  {hook.config_url} (id={hook.id}): {', '.join(hook.events)}", fg="green")

    if len(hooks) < len({(s.owner, s.repo) for s in connector.subscriptions}):
        sys.exit(1)


@webhook.command("status")
@click.option("--repo", required=True, help="Repository (owner/repo)")
def webhook_status(repo: str) -> None:
    """Show webhook config and recent deliveries."""
    settings = get_settings()
    webhook_url = _callback_url_or_exit()

    async def _status() -> None:
        """Display webhook configuration and recent deliveries."""
        from ghconnector.github.client import GitHubClient

        async with GitHubClient(settings.gh_token or None) as github:
            hook = await _find_connector_webhook(github, repo, webhook_url)
            if not hook:
                click.secho(f"No webhook for {webhook_url} on {repo}", fg="yellow")
                return

            click.secho(f"Webhook on {repo}", fg="green", bold=True)
            click.echo(f"  ID:      {hook.id}")
            click.echo(f"  URL:     {hook.url}")
            click.echo(f"  Active:  {hook.active}")
            click.echo(f"  Events:  {', '.join(hook.events)}")
            click.echo(f"  Created: {hook.created_at}")

            deliveries = await github.get_webhook_deliveries(repo, hook.id)
            if not deliveries:
                click.echo("\n  No deliveries yet.")
                return

            click.echo(f"\n  Last {len(deliveries)} deliveries:")
            for d in deliveries:
                if 200 <= d.status_code < 300:
                    color = "green"
                elif d.status_code == 0:
                    color = "yellow"
                else:
                    color = "red"
                action_str = f" ({d.action})" if d.action else ""
                redeliver_str = " [redelivery]" if d.redelivery else ""
                click.echo(
                    f"    {d.delivered_at}  "
                    f"{click.style(str(d.status_code), fg=color)}  "
                    f"{d.event}{action_str}{redeliver_str}"
                )

    asyncio.run(_status())


@webhook.command("remove")
@click.option("--repo", required=True, help="Repository (owner/repo)")
def webhook_remove(repo: str) -> None:
    """Remove this runtime's webhook from a GitHub repository."""
    settings = get_settings()
    webhook_url = _callback_url_or_exit()

    async def _remove() -> None:
        """Delete the webhook from the repository."""
        from ghconnector.github.client import GitHubClient

        async with GitHubClient(settings.gh_token or None) as github:
            hook = await _find_connector_webhook(github, repo, webhook_url)
            if not hook:
                click.secho(f"No webhook for {webhook_url} on {repo}", fg="yellow")
                return

            await github.delete_webhook(repo, hook.id)
            click.secho(f"Removed webhook from {repo} (id={hook.id})", fg="green")

    asyncio.run(_remove())


if __name__ == "__main__":
    cli()
