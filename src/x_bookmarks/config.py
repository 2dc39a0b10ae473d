"""Configuration loading and saving.

Config file location: ~/.config/x-bookmarks/config.toml

Schema:
    [auth]
    access_token = "..."
    refresh_token = "..."   # optional, needs the offline.access scope

    [oauth]
    client_id = "..."
    client_secret = "..."   # optional for public clients

    [database]
    url = "sqlite+aiosqlite:///x_bookmarks.db"

    [server]
    host = "127.0.0.1"
    port = 8000

Environment variables override the file:
    X_CLIENT_ID, X_CLIENT_SECRET, X_BOOKMARKS_DATABASE_URL
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

import tomli_w

from .database import DEFAULT_DATABASE_URL

CONFIG_DIR = Path.home() / ".config" / "x-bookmarks"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class AuthConfig:
    access_token: str
    refresh_token: str | None = None


@dataclass
class OAuthConfig:
    client_id: str | None = None
    client_secret: str | None = None


@dataclass
class AppConfig:
    auth: AuthConfig | None = None
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    database_url: str = DEFAULT_DATABASE_URL
    host: str = "127.0.0.1"
    port: int = 8000


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load config from TOML (if present) and apply environment overrides."""
    data: dict = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

    auth_data = data.get("auth", {})
    oauth_data = data.get("oauth", {})
    database_data = data.get("database", {})
    server_data = data.get("server", {})

    auth = None
    if auth_data.get("access_token"):
        auth = AuthConfig(
            access_token=auth_data["access_token"],
            refresh_token=auth_data.get("refresh_token") or None,
        )

    return AppConfig(
        auth=auth,
        oauth=OAuthConfig(
            client_id=os.environ.get("X_CLIENT_ID", oauth_data.get("client_id")),
            client_secret=os.environ.get(
                "X_CLIENT_SECRET", oauth_data.get("client_secret")
            ),
        ),
        database_url=os.environ.get(
            "X_BOOKMARKS_DATABASE_URL",
            database_data.get("url", DEFAULT_DATABASE_URL),
        ),
        host=server_data.get("host", "127.0.0.1"),
        port=int(server_data.get("port", 8000)),
    )


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file with restricted permissions."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict = {
        "database": {"url": config.database_url},
        "server": {"host": config.host, "port": config.port},
    }

    if config.auth:
        auth = {"access_token": config.auth.access_token}
        if config.auth.refresh_token:
            auth["refresh_token"] = config.auth.refresh_token
        data["auth"] = auth

    oauth = {}
    if config.oauth.client_id:
        oauth["client_id"] = config.oauth.client_id
    if config.oauth.client_secret:
        oauth["client_secret"] = config.oauth.client_secret
    if oauth:
        data["oauth"] = oauth

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Restrict permissions: file contains OAuth tokens
    os.chmod(config_path, 0o600)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()
