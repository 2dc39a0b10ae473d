"""Tests for config loading and saving."""

import pytest

from x_bookmarks.config import (
    AppConfig,
    AuthConfig,
    OAuthConfig,
    config_exists,
    load_config,
    save_config,
)
from x_bookmarks.database import DEFAULT_DATABASE_URL


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("X_CLIENT_ID", "X_CLIENT_SECRET", "X_BOOKMARKS_DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "nope.toml")
        assert config.auth is None
        assert config.database_url == DEFAULT_DATABASE_URL
        assert (config.host, config.port) == ("127.0.0.1", 8000)

    def test_round_trip(self, tmp_path):
        path = tmp_path / "sub" / "config.toml"
        save_config(
            AppConfig(
                auth=AuthConfig(access_token="a", refresh_token="r"),
                oauth=OAuthConfig(client_id="cid", client_secret="secret"),
                database_url="sqlite+aiosqlite:///other.db",
                port=9000,
            ),
            path,
        )

        assert config_exists(path)
        config = load_config(path)
        assert config.auth == AuthConfig(access_token="a", refresh_token="r")
        assert config.oauth == OAuthConfig(client_id="cid", client_secret="secret")
        assert config.database_url == "sqlite+aiosqlite:///other.db"
        assert config.port == 9000

    def test_file_is_private(self, tmp_path):
        path = tmp_path / "config.toml"
        save_config(AppConfig(auth=AuthConfig(access_token="a")), path)
        assert path.stat().st_mode & 0o777 == 0o600

    def test_empty_access_token_means_no_auth(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[auth]\naccess_token = ""\n')
        assert load_config(path).auth is None

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        save_config(
            AppConfig(oauth=OAuthConfig(client_id="from-file")),
            path,
        )
        monkeypatch.setenv("X_CLIENT_ID", "from-env")
        monkeypatch.setenv("X_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("X_BOOKMARKS_DATABASE_URL", "sqlite+aiosqlite:///env.db")

        config = load_config(path)

        assert config.oauth.client_id == "from-env"
        assert config.oauth.client_secret == "env-secret"
        assert config.database_url == "sqlite+aiosqlite:///env.db"
