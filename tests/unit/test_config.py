"""Tests for silkpath.core.config — configuration management.

Tests cover:
- Default values for the token, publishing, and server fields.
- Environment variable overrides using the unprefixed operator names.
- Automatic directory creation on initialisation.
- Derived properties (gallery path, OAuth redirect URI).
- Pydantic validation constraints.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from silkpath.core.config import StudioConfig


def _bare_config(temp_dir: Path, **overrides) -> StudioConfig:
    kwargs = {
        "style_input_dir": temp_dir / "style",
        "hijab_input_dir": temp_dir / "hijab",
        "output_dir": temp_dir / "out",
        **overrides,
    }
    return StudioConfig(_env_file=None, **kwargs)


class TestConfigDefaults:
    """Verify that StudioConfig provides the documented defaults."""

    def test_graph_api_version(self, test_config: StudioConfig):
        assert test_config.graph_api_version == "v18.0"

    def test_token_windows(self, monkeypatch, temp_dir: Path):
        """Refresh window is 7 days and the assumed token lifetime 60 days."""
        monkeypatch.delenv("TOKEN_REFRESH_WINDOW_DAYS", raising=False)
        monkeypatch.delenv("TOKEN_LIFETIME_DAYS", raising=False)
        cfg = _bare_config(temp_dir)
        assert cfg.token_refresh_window_days == 7
        assert cfg.token_lifetime_days == 60

    def test_publish_poll_budget(self, monkeypatch, temp_dir: Path):
        """Container readiness is checked 30 times, one second apart."""
        monkeypatch.delenv("PUBLISH_POLL_ATTEMPTS", raising=False)
        monkeypatch.delenv("PUBLISH_POLL_INTERVAL", raising=False)
        cfg = _bare_config(temp_dir)
        assert cfg.publish_poll_attempts == 30
        assert cfg.publish_poll_interval == 1.0

    def test_default_username(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("INSTAGRAM_USERNAME", raising=False)
        assert _bare_config(temp_dir).instagram_username == "silkpath.co"

    def test_default_server_port(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("DASHBOARD_PORT", raising=False)
        assert _bare_config(temp_dir).dashboard_port == 3000

    def test_default_tokens_file(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("TOKENS_FILE", raising=False)
        assert _bare_config(temp_dir).tokens_file == Path(".instagram-tokens.json")


class TestEnvironmentOverrides:
    """Values come from unprefixed environment variables."""

    def test_fb_app_credentials_from_env(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("FB_APP_ID", "1234567890")
        monkeypatch.setenv("FB_APP_SECRET", "shh")
        cfg = _bare_config(temp_dir)
        assert cfg.fb_app_id == "1234567890"
        assert cfg.fb_app_secret == "shh"

    def test_fallback_credentials_from_env(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("INSTAGRAM_ACCESS_TOKEN", "env-token")
        monkeypatch.setenv("INSTAGRAM_USER_ID", "1784")
        cfg = _bare_config(temp_dir)
        assert cfg.instagram_access_token == "env-token"
        assert cfg.instagram_user_id == "1784"

    def test_image_provider_from_env(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("IMAGE_PROVIDER", "gemini")
        assert _bare_config(temp_dir).image_provider == "gemini"

    def test_invalid_image_provider_rejected(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("IMAGE_PROVIDER", "midjourney")
        with pytest.raises(ValidationError):
            _bare_config(temp_dir)


class TestDirectoryCreation:
    """Input and output directories are created on initialisation."""

    def test_directories_created(self, temp_dir: Path):
        cfg = _bare_config(temp_dir)
        assert cfg.style_input_dir.is_dir()
        assert cfg.hijab_input_dir.is_dir()
        assert cfg.output_dir.is_dir()

    def test_nested_directories_created(self, temp_dir: Path):
        cfg = _bare_config(temp_dir, output_dir=temp_dir / "a" / "b" / "out")
        assert cfg.output_dir.is_dir()


class TestDerivedProperties:
    def test_gallery_db_inside_output_dir(self, test_config: StudioConfig):
        assert test_config.gallery_db == test_config.output_dir / "gallery.json"

    def test_public_url_trailing_slash_removed(self, make_config):
        cfg = make_config(public_url="https://abc.ngrok.io/")
        assert cfg.public_url == "https://abc.ngrok.io"
        assert cfg.oauth_redirect_uri == "https://abc.ngrok.io/auth/instagram/callback"

    def test_blank_public_url_is_none(self, make_config):
        cfg = make_config(public_url="   ")
        assert cfg.public_url is None
        assert cfg.oauth_redirect_uri is None

    def test_oauth_configured(self, test_config: StudioConfig):
        assert test_config.oauth_configured is True

    def test_oauth_not_configured_without_secret(self, make_config):
        assert make_config(fb_app_secret=None).oauth_configured is False


class TestValidation:
    def test_port_out_of_range(self, make_config):
        with pytest.raises(ValidationError):
            make_config(dashboard_port=70000)

    def test_poll_attempts_must_be_positive(self, make_config):
        with pytest.raises(ValidationError):
            make_config(publish_poll_attempts=0)
