"""CLI interface for x-bookmarks.

Commands:
    setup          - Store OAuth tokens and client credentials
    fetch          - Sync bookmarks (served from cache when fresh)
    status         - Show config and cache status
    clear-cache    - Drop the cached snapshot
    refresh-token  - Trade the refresh token for a new access token
    serve          - Run the HTTP API for the dashboard
"""

import asyncio
import json
import sys
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    AppConfig,
    AuthConfig,
    OAuthConfig,
    config_exists,
    load_config,
    save_config,
)
from .logging_config import setup_logging


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.pass_context
def main(ctx, verbose, config):
    """X Bookmarks — Sync, cache and categorize your X bookmarks."""
    setup_logging(debug=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


def _require_auth(ctx) -> AppConfig:
    config_path = ctx.obj["config_path"]
    if not config_exists(config_path):
        click.echo(
            "Error: No config found. Run 'x-bookmarks setup' first.",
            err=True,
        )
        sys.exit(1)
    config = load_config(config_path)
    if config.auth is None:
        click.echo("Error: Config has no access token. Run setup again.", err=True)
        sys.exit(1)
    return config


def _run(config: AppConfig, action):
    """Run ``action(sync)`` against a fresh client and store."""
    from .cache import CacheStore
    from .client import XApiClient
    from .errors import StoreError, SyncFailure
    from .sync import BookmarkSync

    async def runner():
        try:
            store = CacheStore(config.database_url)
        except StoreError as e:
            raise SyncFailure(500, str(e), "store") from e
        try:
            await store.init()
            async with XApiClient(
                config.auth.access_token,
                refresh_token=config.auth.refresh_token,
                client_id=config.oauth.client_id,
                client_secret=config.oauth.client_secret,
            ) as client:
                return await action(BookmarkSync(client, store))
        except StoreError as e:
            raise SyncFailure(500, str(e), "store") from e
        finally:
            await store.close()

    return asyncio.run(runner())


def _fail(failure) -> None:
    click.echo(f"Error: {failure.message}", err=True)
    sys.exit(1)


@main.command()
@click.pass_context
def setup(ctx):
    """Store OAuth tokens for your X account."""
    config_path = ctx.obj["config_path"]
    config = load_config(config_path)

    click.echo("X Bookmarks — Setup")
    click.echo("=" * 40)
    click.echo()
    click.echo("You need an OAuth 2.0 user access token with the scopes")
    click.echo("tweet.read users.read bookmark.read (bookmark.write to edit,")
    click.echo("offline.access for a refresh token).")
    click.echo()

    access_token = click.prompt("access_token", hide_input=True)
    refresh_token = click.prompt(
        "refresh_token (Enter to skip)", default="", show_default=False, hide_input=True
    )
    client_id = click.prompt(
        "client_id (Enter to skip)",
        default=config.oauth.client_id or "",
        show_default=False,
    )

    config.auth = AuthConfig(
        access_token=access_token, refresh_token=refresh_token or None
    )
    config.oauth = OAuthConfig(
        client_id=client_id or None, client_secret=config.oauth.client_secret
    )

    save_config(config, config_path)
    click.echo(f"\nConfig saved to {config_path}")
    click.echo("Run 'x-bookmarks fetch' to sync your bookmarks.")


@main.command()
@click.option(
    "-n", "--max-results", type=int, default=10, help="Bookmarks per page (max 20)"
)
@click.option("--pagination-token", default=None, help="Fetch the page after this token")
@click.option("--force", is_flag=True, help="Ignore the cache and fetch fresh data")
@click.option("--scheduled", is_flag=True, help="Record this run as a scheduled sync")
@click.option("-o", "--output", type=click.Path(), default=None, help="Write JSON here")
@click.pass_context
def fetch(ctx, max_results, pagination_token, force, scheduled, output):
    """Sync bookmarks, serving the cache when it is fresh."""
    from .errors import SyncFailure

    config = _require_auth(ctx)

    async def action(sync):
        return await sync.get_bookmarks(
            max_results=max_results,
            pagination_token=pagination_token,
            force_refresh=force,
            sync_type="scheduled" if scheduled else None,
        )

    try:
        result = _run(config, action)
    except SyncFailure as e:
        _fail(e)

    source = "cache" if result.cached else "X API"
    click.echo(f"{len(result.bookmarks)} bookmarks from {source} for @{result.user.username}.")
    click.echo(f"Last synced: {result.last_synced_at.strftime('%Y-%m-%d %H:%M UTC')}")
    for category, count in sorted(result.categories.items()):
        click.echo(f"  {category}: {count}")
    next_token = result.meta.get("next_token")
    if next_token:
        click.echo(f"Next page: --pagination-token {next_token}")

    if output:
        Path(output).write_text(
            json.dumps(result.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        click.echo(f"Wrote {output}")


@main.command()
@click.pass_context
def status(ctx):
    """Show config and cache status."""
    config_path = ctx.obj["config_path"]
    has_config = config_exists(config_path)

    click.echo("X Bookmarks — Status")
    click.echo("=" * 40)
    click.echo(f"Config: {'Found' if has_config else 'Not configured'} ({config_path})")

    if not has_config:
        click.echo("\nRun 'x-bookmarks setup' to get started.")
        return

    from .errors import SyncFailure

    config = _require_auth(ctx)

    async def action(sync):
        return await sync.cache_status(), await sync.sync_history(limit=1)

    try:
        report, history = _run(config, action)
    except SyncFailure as e:
        _fail(e)

    if not report["hasCache"]:
        click.echo("Cache: empty")
        return
    freshness = "fresh" if report["isFresh"] else "stale"
    click.echo(f"Cache: {report['bookmarksCount']} bookmarks ({freshness})")
    click.echo(f"Last synced: {report['lastSynced']} ({report['cacheAgeMinutes']} min ago)")
    if history:
        last = history[0]
        line = f"Last sync: {last.sync_type} {last.status}"
        if last.error_message:
            line += f" ({last.error_message})"
        click.echo(line)


@main.command("clear-cache")
@click.pass_context
def clear_cache(ctx):
    """Drop the cached snapshot so the next fetch goes to X."""
    from .errors import SyncFailure

    config = _require_auth(ctx)

    async def action(sync):
        return await sync.clear_cache()

    try:
        result = _run(config, action)
    except SyncFailure as e:
        _fail(e)
    click.echo(result["message"])


@main.command("refresh-token")
@click.pass_context
def refresh_token(ctx):
    """Exchange the stored refresh token for a new token pair."""
    from .client import XApiClient
    from .errors import BookmarksError

    config = _require_auth(ctx)

    async def exchange():
        async with XApiClient(
            config.auth.access_token,
            refresh_token=config.auth.refresh_token,
            client_id=config.oauth.client_id,
            client_secret=config.oauth.client_secret,
        ) as client:
            await client.refresh_access_token()
            return client.access_token, client.refresh_token

    try:
        access, refresh = asyncio.run(exchange())
    except BookmarksError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    config.auth = AuthConfig(access_token=access, refresh_token=refresh)
    save_config(config, ctx.obj["config_path"])
    click.echo("Access token refreshed.")


@main.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", type=int, default=None, help="Bind port")
@click.pass_context
def serve(ctx, host, port):
    """Run the HTTP API for the dashboard."""
    import uvicorn

    from .api import create_app

    config = load_config(ctx.obj["config_path"])
    uvicorn.run(
        create_app(config),
        host=host or config.host,
        port=port or config.port,
        log_config=None,
    )
