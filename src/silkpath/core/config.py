"""Configuration management for SilkPath Studio.

This module provides centralized configuration management using Pydantic Settings.
Values are loaded from environment variables (and a ``.env`` file) using the same
names operators already put in their ``.env`` for the Facebook app and the image
providers, so no prefix is applied.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables
2. .env file in the working directory
3. Default values defined in StudioConfig

Example .env file:
    FB_APP_ID=1234567890
    FB_APP_SECRET=abcdef0123456789
    PUBLIC_URL=https://studio.example.ngrok.io
    IMAGE_PROVIDER=gemini
    GEMINI_API_KEY=...

Fallback Credentials
--------------------
``INSTAGRAM_ACCESS_TOKEN`` and ``INSTAGRAM_USER_ID`` form the second credential
tier.  They are only used when no stored credential record exists, which keeps
the dashboard usable without ever completing the OAuth flow.

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.

    from silkpath.core.config import config

    print(config.output_dir)
    print(config.gallery_db)

Directory Management
--------------------
The configuration automatically creates required directories on initialization:
- style_input_dir: Style reference photos
- hijab_input_dir: One sub-folder of clothing photos per hijab style
- output_dir: Generated images and ``gallery.json``
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StudioConfig(BaseSettings):
    """Main configuration for SilkPath Studio.

    Attributes
    ----------
    OAuth client:
        fb_app_id, fb_app_secret : str | None
            Facebook app credentials used for the code and token exchanges.
        public_url : str | None
            Publicly reachable base URL (callback + image serving).
        fb_page_id : str | None
            Restrict account discovery to this Facebook Page.

    Graph API:
        graph_api_base, oauth_dialog_base, graph_api_version, http_timeout

    Fallback credentials:
        instagram_access_token, instagram_user_id, instagram_username

    Token lifecycle / publishing:
        token_refresh_window_days, token_lifetime_days,
        publish_poll_interval, publish_poll_attempts

    Generation:
        image_provider, openai_api_key, gemini_api_key, model names,
        style_image_count, generation_delay, generation_timeout

    Server:
        dashboard_host, dashboard_port, log_level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OAuth client
    fb_app_id: str | None = Field(default=None, description="Facebook app id")
    fb_app_secret: str | None = Field(default=None, description="Facebook app secret")
    public_url: str | None = Field(
        default=None,
        description="Public base URL used for the OAuth callback and image URLs",
    )
    fb_page_id: str | None = Field(
        default=None,
        description="Only consider this Facebook Page when discovering the Instagram account",
    )
    oauth_scope: str = Field(
        default=(
            "public_profile,pages_show_list,pages_read_engagement,"
            "instagram_basic,instagram_content_publish"
        ),
        description="Permissions requested by the OAuth dialog",
    )

    # Graph API
    graph_api_base: str = Field(default="https://graph.facebook.com")
    oauth_dialog_base: str = Field(default="https://www.facebook.com")
    graph_api_version: str = Field(default="v18.0")
    http_timeout: float = Field(default=30.0, gt=0)

    # Fallback credential tier
    instagram_access_token: str | None = Field(default=None)
    instagram_user_id: str | None = Field(default=None)
    instagram_username: str = Field(
        default="silkpath.co",
        description="Display name reported for the environment credential tier",
    )

    # Token lifecycle
    token_refresh_window_days: int = Field(default=7, ge=0)
    token_lifetime_days: int = Field(default=60, ge=1)

    # Publishing
    publish_poll_interval: float = Field(default=1.0, ge=0)
    publish_poll_attempts: int = Field(default=30, ge=1)

    # Paths
    style_input_dir: Path = Field(default=Path("style_input"))
    hijab_input_dir: Path = Field(default=Path("hijab_input"))
    output_dir: Path = Field(default=Path("output_folder"))
    tokens_file: Path = Field(default=Path(".instagram-tokens.json"))

    # Generation
    image_provider: Literal["openai", "gemini"] = Field(default="openai")
    openai_api_key: str | None = Field(default=None)
    gemini_api_key: str | None = Field(default=None)
    openai_image_model: str = Field(default="gpt-image-1")
    gemini_image_model: str = Field(default="gemini-3-pro-image-preview")
    gemini_caption_model: str = Field(default="gemini-2.0-flash")
    style_image_count: int = Field(default=3, ge=1)
    generation_delay: float = Field(
        default=1.0,
        ge=0,
        description="Pause between consecutive provider calls",
    )
    generation_timeout: float = Field(
        default=900.0,
        gt=0,
        description="How long the dashboard waits for one generator run",
    )

    # Server
    dashboard_host: str = Field(default="0.0.0.0")
    dashboard_port: int = Field(default=3000, ge=1, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("public_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None

    def __init__(self, **kwargs):
        """Initialize configuration and create required directories."""
        super().__init__(**kwargs)

        self.style_input_dir.mkdir(parents=True, exist_ok=True)
        self.hijab_input_dir.mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    @property
    def gallery_db(self) -> Path:
        """Path of the gallery document inside the output folder."""
        return self.output_dir / "gallery.json"

    @property
    def oauth_configured(self) -> bool:
        """Whether the OAuth flow has everything it needs."""
        return bool(self.fb_app_id and self.fb_app_secret and self.public_url)

    @property
    def oauth_redirect_uri(self) -> str | None:
        if not self.public_url:
            return None
        return f"{self.public_url}/auth/instagram/callback"


# Global configuration instance
config = StudioConfig()
