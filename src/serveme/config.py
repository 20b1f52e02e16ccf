"""Client configuration.

Defaults can be overridden through `SERVEME_*` environment variables, which
are also read from a `.env` file when one is present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

DEFAULT_SERVER_URL = "https://api.myapp.com"


def default_store_path() -> Path:
    """Location of the settings document under the user's config directory."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else Path.home() / ".config"
    return base / "serveme" / "settings.json"


@dataclass
class ClientConfig:
    server_url: str = DEFAULT_SERVER_URL
    store_path: Path = field(default_factory=default_store_path)
    lead_time: float = 30.0  # seconds before token expiry to refresh
    request_timeout: float = 30.0
    health_timeout: float = 5.0
    poll_interval: float | None = None  # None disables background polling
    api_prefix: str = ""

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        dotenv_path: str | os.PathLike[str] | None = None,
    ) -> ClientConfig:
        """Build a configuration from environment variables.

        Args:
            env: Variables to read; defaults to `os.environ` after loading
                `.env` (existing variables are not overridden)
            dotenv_path: Explicit `.env` location

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ

        config = cls()
        if env.get("SERVEME_SERVER_URL"):
            config.server_url = env["SERVEME_SERVER_URL"]
        if env.get("SERVEME_STORE_PATH"):
            config.store_path = Path(env["SERVEME_STORE_PATH"]).expanduser()
        if "SERVEME_API_PREFIX" in env:
            config.api_prefix = env["SERVEME_API_PREFIX"]

        config.lead_time = _float(env, "SERVEME_LEAD_TIME", config.lead_time)
        config.request_timeout = _float(
            env, "SERVEME_REQUEST_TIMEOUT", config.request_timeout
        )
        config.health_timeout = _float(
            env, "SERVEME_HEALTH_TIMEOUT", config.health_timeout
        )
        config.poll_interval = _float(
            env, "SERVEME_POLL_INTERVAL", config.poll_interval
        )
        return config


def _float(env: Mapping[str, str], name: str, default: float | None) -> float | None:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
