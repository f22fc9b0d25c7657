"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_AI_MODEL = "claude-haiku-4-5-20251001"

DEFAULT_ALERT_KEYWORDS = ["ban", "kick", "trouble"]


class Settings(BaseSettings):
    """BobbyBot configuration.

    All values can be overridden via environment variables or .env file.
    """

    # Discord
    discord_bot_token: str = ""
    discord_guild_id: str = ""
    command_prefix: str = "!"

    # Database
    database_url: str = "sqlite+aiosqlite:///bobbybot.db"

    # AI chat
    anthropic_api_key: str = ""
    bobby_ai_model: str = DEFAULT_AI_MODEL

    # Valorant rank lookup (HenrikDev API)
    henrik_api_key: str = ""
    henrik_api_base_url: str = "https://api.henrikdev.xyz"

    # Moderation
    alert_channel_id: str = ""
    alert_keywords: Annotated[list[str], NoDecode] = DEFAULT_ALERT_KEYWORDS
    thin_ice_role_id: str = ""

    # Roles
    economy_admin_role_id: str = ""
    valorant_role_id: str = ""

    # Environment
    bobby_env: str = "development"

    # Logging
    bobby_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @field_validator("command_prefix")
    @classmethod
    def _single_char_prefix(cls, value: str) -> str:
        """The text command grammar needs exactly one non-space prefix character."""
        if len(value) != 1 or value.isspace():
            msg = f"COMMAND_PREFIX must be a single non-space character, got {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("alert_keywords", mode="before")
    @classmethod
    def _split_keywords(cls, value: object) -> object:
        """Accept a comma-separated string from the environment."""
        if isinstance(value, str):
            return [kw.strip() for kw in value.split(",") if kw.strip()]
        return value

    @property
    def target_guild_id(self) -> int | None:
        """Guild the bot is scoped to, or None to accept every guild."""
        return int(self.discord_guild_id) if self.discord_guild_id else None

    @staticmethod
    def _as_id(value: str) -> int | None:
        return int(value) if value else None

    @property
    def alert_channel(self) -> int | None:
        return self._as_id(self.alert_channel_id)

    @property
    def thin_ice_role(self) -> int | None:
        return self._as_id(self.thin_ice_role_id)

    @property
    def economy_admin_role(self) -> int | None:
        return self._as_id(self.economy_admin_role_id)

    @property
    def valorant_role(self) -> int | None:
        return self._as_id(self.valorant_role_id)
