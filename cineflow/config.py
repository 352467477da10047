from __future__ import annotations

"""
Configuration plumbing for Cineflow.

Reads a JSON file or the process environment, and flips tables if the bot
token or the TMDB key went missing on the way.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Mapping, Optional

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; CineflowBot/1.0)"
DEFAULT_TMDB_URL = "https://api.themoviedb.org/3"
DEFAULT_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_MAX_ELAPSED = 20.0
DEFAULT_SESSION_TTL = 180.0
DEFAULT_NOTICE_TTL = 30.0
DEFAULT_MAX_PAGES = 5
DEFAULT_RATE_WINDOW = 2.0
DEFAULT_RATE_BURST = 5
DEFAULT_HEALTH_PORT = 3000

PROXY_MODES = ("off", "always", "fallback")


class ConfigError(Exception):
    """Raised when configuration loading faceplants."""


def _split_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _parse_chat_id(value: str) -> int | str:
    # Public channels may be configured by @username instead of numeric id.
    try:
        return int(value)
    except ValueError:
        return value


@dataclass
class GateTarget:
    """A group or channel the user must belong to, plus the door to get in."""

    chat_id: int | str
    invite_link: Optional[str] = None


@dataclass
class TelegramConfig:
    """Bot credentials and who gets let through the velvet rope."""

    bot_token: str
    gate_targets: List[GateTarget] = field(default_factory=list)
    allowed_user_ids: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TelegramConfig":
        """
        Build an instance from raw configuration data.

        Parameters
        ----------
        data : dict[str, Any]
            Chunk of config scoped to Telegram.

        Returns
        -------
        TelegramConfig
            Config object with the gate targets already paired up.

        Raises
        ------
        ConfigError
            If the bot token is missing, or the invite links outnumber the chats.
        """

        token = data.get("bot_token")
        if not token:
            raise ConfigError("Missing Telegram setting: bot_token")

        chat_ids = _split_list(data.get("gate_chat_ids"))
        invite_links = _split_list(data.get("gate_invite_links"))
        if len(invite_links) > len(chat_ids):
            raise ConfigError("More gate invite links than gate chats configured")

        targets = [
            GateTarget(
                chat_id=_parse_chat_id(chat_id),
                invite_link=invite_links[idx] if idx < len(invite_links) else None,
            )
            for idx, chat_id in enumerate(chat_ids)
        ]

        try:
            allowed = [int(item) for item in _split_list(data.get("allowed_user_ids"))]
        except ValueError as exc:
            raise ConfigError(f"Invalid allowed_user_ids entry: {exc}") from exc

        return cls(bot_token=str(token), gate_targets=targets, allowed_user_ids=allowed)


@dataclass
class TmdbConfig:
    """Settings for the TMDB API, including the detour through the proxy."""

    api_key: str
    base_url: str = DEFAULT_TMDB_URL
    image_base_url: str = DEFAULT_IMAGE_BASE_URL
    proxy_url: Optional[str] = None
    proxy_mode: str = "off"
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    max_elapsed: float = DEFAULT_MAX_ELAPSED

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TmdbConfig":
        """
        Build an instance from raw configuration data.

        Parameters
        ----------
        data : dict[str, Any]
            Chunk of config scoped to TMDB.

        Returns
        -------
        TmdbConfig
            Fully hydrated config object ready for that first HTTP handshake.

        Raises
        ------
        ConfigError
            If the API key is missing or the proxy mode makes no sense.
        """

        api_key = data.get("api_key")
        if not api_key:
            raise ConfigError("Missing TMDB setting: api_key")

        proxy_url = data.get("proxy_url") or None
        # A configured proxy with no explicit mode is used for every request.
        default_mode = "always" if proxy_url else "off"
        proxy_mode = str(data.get("proxy_mode") or default_mode).lower()
        if proxy_mode not in PROXY_MODES:
            raise ConfigError(f"Unknown proxy_mode {proxy_mode!r}, expected one of {', '.join(PROXY_MODES)}")
        if proxy_mode != "off" and not proxy_url:
            raise ConfigError(f"proxy_mode {proxy_mode!r} requires proxy_url")

        try:
            return cls(
                api_key=str(api_key),
                base_url=str(data.get("base_url") or DEFAULT_TMDB_URL).rstrip("/"),
                image_base_url=str(data.get("image_base_url") or DEFAULT_IMAGE_BASE_URL),
                proxy_url=proxy_url,
                proxy_mode=proxy_mode,
                user_agent=data.get("user_agent") or DEFAULT_USER_AGENT,
                request_timeout=float(data.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
                max_attempts=max(1, int(data.get("max_attempts", DEFAULT_MAX_ATTEMPTS))),
                backoff_base=float(data.get("backoff_base", DEFAULT_BACKOFF_BASE)),
                max_elapsed=float(data.get("max_elapsed", DEFAULT_MAX_ELAPSED)),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid TMDB setting: {exc}") from exc


@dataclass
class SiteConfig:
    """Where the watch and download buttons point."""

    base_url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteConfig":
        base_url = data.get("base_url")
        if not base_url:
            raise ConfigError("Missing site setting: base_url")
        return cls(base_url=str(base_url).rstrip("/"))


@dataclass
class SessionConfig:
    """Timers and limits for search sessions."""

    session_ttl: float = DEFAULT_SESSION_TTL
    notice_ttl: float = DEFAULT_NOTICE_TTL
    max_pages: int = DEFAULT_MAX_PAGES
    rate_window: float = DEFAULT_RATE_WINDOW
    rate_burst: int = DEFAULT_RATE_BURST

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SessionConfig":
        if not data:
            return cls()
        try:
            return cls(
                session_ttl=float(data.get("session_ttl", DEFAULT_SESSION_TTL)),
                notice_ttl=float(data.get("notice_ttl", DEFAULT_NOTICE_TTL)),
                max_pages=max(1, int(data.get("max_pages", DEFAULT_MAX_PAGES))),
                rate_window=float(data.get("rate_window", DEFAULT_RATE_WINDOW)),
                rate_burst=max(1, int(data.get("rate_burst", DEFAULT_RATE_BURST))),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid session setting: {exc}") from exc


@dataclass
class HealthConfig:
    """Bind address for the liveness endpoint the hosting platform pokes."""

    host: str = "0.0.0.0"
    port: int = DEFAULT_HEALTH_PORT
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "HealthConfig":
        if not data:
            return cls()
        try:
            port = int(data.get("port", DEFAULT_HEALTH_PORT))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid health port: {exc}") from exc
        return cls(
            host=str(data.get("host", "0.0.0.0")),
            port=port,
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class LoggingConfig:
    """Lightweight logging configuration for when INFO just isn't loud enough."""

    level: str = "INFO"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LoggingConfig":
        if data is None:
            return cls()
        return cls(level=str(data.get("level", "INFO")).upper())


@dataclass
class AppConfig:
    """Aggregate configuration in one friendly bundle."""

    telegram: TelegramConfig
    tmdb: TmdbConfig
    site: SiteConfig
    session: SessionConfig = field(default_factory=SessionConfig)
    health: HealthConfig = field(default_factory=HealthConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        """
        Stitch together the full configuration set.

        Parameters
        ----------
        data : dict[str, Any]
            Entire configuration payload.

        Returns
        -------
        AppConfig
            Everything the bot needs to know, tied up in a dataclass bow.

        Raises
        ------
        ConfigError
            If a mandatory top-level section is missing.
        """

        try:
            telegram_data = data["telegram"]
            tmdb_data = data["tmdb"]
            site_data = data["site"]
        except KeyError as exc:
            raise ConfigError(f"Missing top-level section: {exc.args[0]}") from exc

        return cls(
            telegram=TelegramConfig.from_dict(telegram_data),
            tmdb=TmdbConfig.from_dict(tmdb_data),
            site=SiteConfig.from_dict(site_data),
            session=SessionConfig.from_dict(data.get("session")),
            health=HealthConfig.from_dict(data.get("health")),
            logging=LoggingConfig.from_dict(data.get("logging")),
        )


# Environment variable -> (section, key)
ENV_KEYS = {
    "BOT_TOKEN": ("telegram", "bot_token"),
    "GATE_CHAT_IDS": ("telegram", "gate_chat_ids"),
    "GATE_INVITE_LINKS": ("telegram", "gate_invite_links"),
    "ALLOWED_USER_IDS": ("telegram", "allowed_user_ids"),
    "TMDB_API_KEY": ("tmdb", "api_key"),
    "TMDB_BASE_URL": ("tmdb", "base_url"),
    "TMDB_IMAGE_BASE_URL": ("tmdb", "image_base_url"),
    "PROXY_API_URL": ("tmdb", "proxy_url"),
    "PROXY_MODE": ("tmdb", "proxy_mode"),
    "TMDB_TIMEOUT": ("tmdb", "request_timeout"),
    "TMDB_MAX_ATTEMPTS": ("tmdb", "max_attempts"),
    "CINEFLOW_URL": ("site", "base_url"),
    "SESSION_TTL": ("session", "session_ttl"),
    "NOTICE_TTL": ("session", "notice_ttl"),
    "MAX_PAGES": ("session", "max_pages"),
    "RATE_WINDOW": ("session", "rate_window"),
    "RATE_BURST": ("session", "rate_burst"),
    "HOST": ("health", "host"),
    "PORT": ("health", "port"),
    "LOG_LEVEL": ("logging", "level"),
}


class ConfigLoader:
    """Loads application configuration from a JSON file or the environment."""

    def __init__(self, path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None):
        """
        Parameters
        ----------
        path : str | Path | None
            JSON config file. ``None`` means the environment is the only source.
        environ : Mapping[str, str] | None
            Environment to read, ``os.environ`` when omitted.
        """

        self.path = Path(path) if path else None
        self.environ = os.environ if environ is None else environ

    def load(self) -> AppConfig:
        """
        Read and validate the configuration.

        Values found in the environment win over the JSON file, so a hosting
        platform can inject secrets without touching the file.

        Raises
        ------
        ConfigError
            When the file is missing or invalid, or a mandatory value is absent.
        """

        payload: dict[str, Any] = {}
        if self.path is not None:
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except FileNotFoundError as exc:
                raise ConfigError(f"Configuration file not found: {self.path}") from exc
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON configuration: {exc.msg}") from exc
            if not isinstance(payload, dict):
                raise ConfigError("Configuration root must be a JSON object")

        for section in ("telegram", "tmdb", "site"):
            payload.setdefault(section, {})
        for env_name, (section, key) in ENV_KEYS.items():
            value = self.environ.get(env_name)
            if value is None or value == "":
                continue
            payload.setdefault(section, {})
            payload[section][key] = value

        return AppConfig.from_dict(payload)

    @staticmethod
    def apply_overrides(config: AppConfig, overrides: dict[str, Any]) -> AppConfig:
        """
        Update the in-memory configuration with CLI overrides.

        ``None`` values are ignored so unset flags keep the loaded value.
        """

        if overrides.get("token"):
            config.telegram.bot_token = overrides["token"]
        if overrides.get("port") is not None:
            config.health.port = int(overrides["port"])
        if overrides.get("no_health"):
            config.health.enabled = False
        if overrides.get("session_ttl") is not None:
            config.session.session_ttl = float(overrides["session_ttl"])
        if overrides.get("proxy_mode"):
            mode = overrides["proxy_mode"]
            if mode != "off" and not config.tmdb.proxy_url:
                raise ConfigError(f"proxy_mode {mode!r} requires proxy_url")
            config.tmdb.proxy_mode = mode
        return config
