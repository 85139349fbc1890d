"""Configuration loader for the admin bot.

Configuration is read from environment variables; a ``.env`` file next to
the project (or at ``DOTENV_PATH``) is loaded first with python-dotenv.
Variables already present in the environment take precedence.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .xui_api import DEFAULT_API_PREFIX


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


@dataclass
class Settings:
    """Configuration values required by the application."""

    bot_token: str
    admin_ids: List[int]
    xui_url: str
    xui_username: str
    xui_password: str
    sub_url_prefix: str = ""
    xui_api_prefix: str = DEFAULT_API_PREFIX
    xui_verify_ssl: bool = False
    data_file: str = "data.json"
    poll_interval: float = 1.0
    trusted_account_limit: int = 3
    log_level: str = "INFO"


def _require(name: str, *aliases: str) -> str:
    for key in (name, *aliases):
        value = os.environ.get(key)
        if value:
            return value.strip()
    raise ConfigError(f"{name} environment variable is required")


def parse_admin_ids(raw: str) -> List[int]:
    """Parse a comma separated list of chat ids."""

    ids: List[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            ids.append(int(part))
        except ValueError as exc:
            raise ConfigError(f"TG_ADMIN_IDS contains a non-numeric id: {part!r}") from exc
    if not ids:
        raise ConfigError("TG_ADMIN_IDS must list at least one chat id")
    return ids


def _load_dotenv(dotenv_path: Optional[str]) -> None:
    env_path = Path(dotenv_path) if dotenv_path else Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def load_settings() -> Settings:
    """Load settings from environment variables.

    Returns
    -------
    Settings
        The populated configuration dataclass. Raises :class:`ConfigError`
        if the bot token, the admin ids or the panel credentials are missing.
    """
    _load_dotenv(os.environ.get("DOTENV_PATH"))

    token = _require("TG_TOKEN", "TELEGRAM_BOT_TOKEN")
    admin_ids = parse_admin_ids(_require("TG_ADMIN_IDS"))
    xui_url = _require("XRAY_API_URL")
    xui_username = _require("XRAY_USER")
    xui_password = _require("XRAY_PASSWORD")

    poll_interval_raw = os.environ.get("POLL_INTERVAL", "1.0")
    try:
        poll_interval = float(poll_interval_raw)
    except ValueError as exc:
        raise ConfigError("POLL_INTERVAL must be a number") from exc

    limit_raw = os.environ.get("TRUSTED_ACCOUNT_LIMIT", "3")
    try:
        trusted_account_limit = int(limit_raw)
    except ValueError as exc:
        raise ConfigError("TRUSTED_ACCOUNT_LIMIT must be an integer") from exc

    verify_ssl = os.environ.get("XUI_VERIFY_SSL", "0").strip().lower() not in {"0", "false", "no", ""}

    return Settings(
        bot_token=token,
        admin_ids=admin_ids,
        xui_url=xui_url,
        xui_username=xui_username,
        xui_password=xui_password,
        sub_url_prefix=os.environ.get("XRAY_SUB_URL_PREFIX", ""),
        xui_api_prefix=os.environ.get("XUI_API_PREFIX", DEFAULT_API_PREFIX),
        xui_verify_ssl=verify_ssl,
        data_file=os.environ.get("DATA_FILE", "data.json"),
        poll_interval=poll_interval,
        trusted_account_limit=trusted_account_limit,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
