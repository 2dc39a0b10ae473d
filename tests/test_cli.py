"""Tests for the CLI interface."""

import json

import pytest
from click.testing import CliRunner

from x_bookmarks.cli import main
from x_bookmarks.config import AppConfig, AuthConfig, load_config, save_config
from x_bookmarks.errors import AuthError, RateLimitError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    for name in ("X_CLIENT_ID", "X_CLIENT_SECRET", "X_BOOKMARKS_DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path / "config.toml"


@pytest.fixture
def configured(config_path, tmp_path):
    """Create a valid config file pointing at a temporary database."""
    config = AppConfig(
        auth=AuthConfig(access_token="test_token", refresh_token="test_refresh"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}",
    )
    save_config(config, config_path)
    return config_path


@pytest.fixture
def patched_client(monkeypatch, fake_client):
    """Route every XApiClient the CLI builds to the fake."""
    monkeypatch.setattr(
        "x_bookmarks.client.XApiClient", lambda *args, **kwargs: fake_client
    )
    return fake_client


class TestCLI:
    def test_help(self, runner):
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "X Bookmarks" in result.output

    def test_setup_creates_config(self, runner, config_path):
        result = runner.invoke(
            main,
            ["--config", str(config_path), "setup"],
            input="my_access_token\nmy_refresh_token\nmy_client_id\n",
        )
        assert result.exit_code == 0
        assert "Config saved" in result.output
        assert config_path.exists()
        assert config_path.stat().st_mode & 0o777 == 0o600

        config = load_config(config_path)
        assert config.auth.access_token == "my_access_token"
        assert config.auth.refresh_token == "my_refresh_token"
        assert config.oauth.client_id == "my_client_id"

    def test_setup_optional_fields(self, runner, config_path):
        result = runner.invoke(
            main,
            ["--config", str(config_path), "setup"],
            input="only_access\n\n\n",
        )
        assert result.exit_code == 0
        config = load_config(config_path)
        assert config.auth.refresh_token is None
        assert config.oauth.client_id is None

    def test_fetch_without_config(self, runner, config_path):
        result = runner.invoke(main, ["--config", str(config_path), "fetch"])
        assert result.exit_code != 0
        assert "No config found" in result.output

    def test_status_without_config(self, runner, config_path):
        result = runner.invoke(main, ["--config", str(config_path), "status"])
        assert result.exit_code == 0
        assert "Not configured" in result.output

    def test_fetch_help_shows_options(self, runner):
        result = runner.invoke(main, ["fetch", "--help"])
        assert result.exit_code == 0
        assert "--max-results" in result.output
        assert "--force" in result.output
        assert "--pagination-token" in result.output


class TestFetch:
    def test_fetch_then_cached(self, runner, configured, patched_client):
        result = runner.invoke(main, ["--config", str(configured), "fetch"])
        assert result.exit_code == 0, result.output
        assert "3 bookmarks from X API for @testuser." in result.output
        assert "Tech: 1" in result.output
        assert "--pagination-token next_abc" in result.output

        result = runner.invoke(main, ["--config", str(configured), "fetch"])
        assert result.exit_code == 0, result.output
        assert "3 bookmarks from cache" in result.output
        assert len(patched_client.calls_to("get_bookmarks")) == 1

    def test_force_and_max_results(self, runner, configured, patched_client):
        runner.invoke(main, ["--config", str(configured), "fetch"])
        result = runner.invoke(
            main, ["--config", str(configured), "fetch", "--force", "-n", "50"]
        )
        assert result.exit_code == 0, result.output
        assert "from X API" in result.output
        assert patched_client.calls_to("get_bookmarks")[-1][2] == 20

    def test_writes_json_output(self, runner, configured, patched_client, tmp_path):
        output = tmp_path / "bookmarks.json"
        result = runner.invoke(
            main, ["--config", str(configured), "fetch", "-o", str(output)]
        )
        assert result.exit_code == 0, result.output
        data = json.loads(output.read_text(encoding="utf-8"))
        assert [b["id"] for b in data["bookmarks"]] == ["1001", "1002", "1003"]
        assert data["cached"] is False

    def test_rate_limit_is_reported(self, runner, configured, patched_client):
        patched_client.errors["get_bookmarks"] = RateLimitError("slow down")

        result = runner.invoke(main, ["--config", str(configured), "fetch"])

        assert result.exit_code == 1
        assert "Rate limit exceeded. Please try again in 15 minutes." in result.output

    def test_expired_token_is_reported(self, runner, configured, patched_client):
        patched_client.errors["get_current_user"] = AuthError("expired")

        result = runner.invoke(main, ["--config", str(configured), "fetch"])

        assert result.exit_code == 1
        assert "Authentication expired" in result.output

    def test_unopenable_database_is_reported(
        self, runner, config_path, patched_client
    ):
        save_config(
            AppConfig(
                auth=AuthConfig(access_token="test_token"),
                database_url="sqlite+aiosqlite:////nonexistent-dir/cli.db",
            ),
            config_path,
        )

        for command in ("fetch", "status", "clear-cache"):
            result = runner.invoke(main, ["--config", str(config_path), command])

            assert result.exit_code == 1, command
            assert "Error: Failed to initialize the database" in result.output
            assert isinstance(result.exception, SystemExit)


class TestStatusAndCache:
    def test_status_with_empty_cache(self, runner, configured, patched_client):
        result = runner.invoke(main, ["--config", str(configured), "status"])
        assert result.exit_code == 0, result.output
        assert "Found" in result.output
        assert "Cache: empty" in result.output

    def test_status_after_fetch(self, runner, configured, patched_client):
        runner.invoke(main, ["--config", str(configured), "fetch"])

        result = runner.invoke(main, ["--config", str(configured), "status"])

        assert result.exit_code == 0, result.output
        assert "Cache: 3 bookmarks (fresh)" in result.output
        assert "Last sync: auto success" in result.output

    def test_clear_cache(self, runner, configured, patched_client):
        runner.invoke(main, ["--config", str(configured), "fetch"])

        result = runner.invoke(main, ["--config", str(configured), "clear-cache"])
        assert result.exit_code == 0, result.output
        assert "Cache cleared successfully" in result.output

        result = runner.invoke(main, ["--config", str(configured), "status"])
        assert "Cache: empty" in result.output


class FakeTokenClient:
    def __init__(self, access_token, refresh_token=None, **kwargs):
        self.access_token = access_token
        self.refresh_token = refresh_token

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        pass

    async def refresh_access_token(self):
        if self.refresh_token != "test_refresh":
            raise AuthError("Failed to refresh access token")
        self.access_token = "new_access"
        self.refresh_token = "new_refresh"


class TestRefreshToken:
    def test_saves_new_pair(self, runner, configured, monkeypatch):
        monkeypatch.setattr("x_bookmarks.client.XApiClient", FakeTokenClient)

        result = runner.invoke(main, ["--config", str(configured), "refresh-token"])

        assert result.exit_code == 0, result.output
        assert "Access token refreshed." in result.output
        config = load_config(configured)
        assert config.auth.access_token == "new_access"
        assert config.auth.refresh_token == "new_refresh"

    def test_rejected_refresh(self, runner, config_path, monkeypatch):
        save_config(
            AppConfig(auth=AuthConfig(access_token="a", refresh_token="revoked")),
            config_path,
        )
        monkeypatch.setattr("x_bookmarks.client.XApiClient", FakeTokenClient)

        result = runner.invoke(main, ["--config", str(config_path), "refresh-token"])

        assert result.exit_code == 1
        assert "Failed to refresh" in result.output
        assert load_config(config_path).auth.access_token == "a"
