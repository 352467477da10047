#!/usr/bin/env python3
from __future__ import annotations

"""
Telegram front door for Cineflow.

Usage
-----
python cineflow_bot.py [--config config.json] [--token <bot-token>]

Flow
----
- User sends: ``batman``.
- Bot replies with a page of matching movies and shows as buttons, with
  Previous/Next controls, and cleans the list up after a few minutes.
- User taps a title and gets a card with watch, download and share links.
- ``/movie``, ``/tv`` and ``/id`` skip the list and go straight to the card.
"""

import argparse
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from telegram.ext import Application, ApplicationBuilder

from cineflow.config import AppConfig, ConfigError, ConfigLoader, PROXY_MODES
from cineflow.finder import MediaFinder
from cineflow.health import HealthServer
from cineflow.telegram import (
    DeletionScheduler,
    KeyboardBuilder,
    MembershipGate,
    MessageFactory,
    RateLimiter,
    SessionCoordinator,
    SessionStore,
    TelegramMediaController,
)
from cineflow.tmdb import TmdbClient

LOGGER = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Telegram bot that searches TMDB and links to Cineflow.")
    parser.add_argument("--config", help="Optional JSON configuration file; environment variables override it.")
    parser.add_argument("--token", help="Telegram Bot API token (overrides config/env).")
    parser.add_argument("--port", type=int, help="Port for the liveness endpoint (overrides PORT).")
    parser.add_argument("--no-health", action="store_true", help="Do not start the liveness endpoint.")
    parser.add_argument("--session-ttl", type=float, help="Seconds before a result list deletes itself.")
    parser.add_argument("--proxy-mode", choices=PROXY_MODES, help="How TMDB requests use the proxy.")
    parser.add_argument(
        "--telemetry-level",
        help="Logging level for stdout (DEBUG/INFO/WARNING/ERROR), defaults to the configured level.",
    )
    return parser.parse_args()


def collect_overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "token": args.token,
        "port": args.port,
        "no_health": args.no_health,
        "session_ttl": args.session_ttl,
        "proxy_mode": args.proxy_mode,
    }


def configure_logging(config: AppConfig, level_override: Optional[str]) -> None:
    level_name = (level_override or config.logging.level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    # httpx logs every Telegram long-poll at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_app(config: AppConfig) -> Application:
    tmdb = TmdbClient(config.tmdb)
    finder = MediaFinder(tmdb)
    scheduler = DeletionScheduler()
    store = SessionStore(scheduler)
    keyboards = KeyboardBuilder(config.site.base_url)
    messages = MessageFactory()
    gate = None
    if config.telegram.gate_targets:
        gate = MembershipGate(config.telegram.gate_targets, config.telegram.allowed_user_ids)
    coordinator = SessionCoordinator(
        finder,
        store,
        scheduler,
        RateLimiter(config.session.rate_window, config.session.rate_burst),
        keyboards,
        messages,
        image_base_url=config.tmdb.image_base_url,
        gate=gate,
        session_ttl=config.session.session_ttl,
        notice_ttl=config.session.notice_ttl,
        max_pages=config.session.max_pages,
    )
    health_server = HealthServer(config.health.host, config.health.port) if config.health.enabled else None
    controller = TelegramMediaController(coordinator, messages, scheduler, health_server=health_server)

    application = ApplicationBuilder().token(config.telegram.bot_token).concurrent_updates(True).build()
    controller.register(application)
    return application


def main() -> None:
    args = parse_args()
    load_dotenv()

    environ = dict(os.environ)
    if args.token:
        environ["BOT_TOKEN"] = args.token
    loader = ConfigLoader(args.config, environ=environ)
    try:
        config = loader.load()
        config = ConfigLoader.apply_overrides(config, collect_overrides(args))
    except ConfigError as exc:
        raise SystemExit(f"Config error: {exc}") from exc

    configure_logging(config, args.telemetry_level)

    application = build_app(config)

    gate_note = f"{len(config.telegram.gate_targets)} gate chat(s)" if config.telegram.gate_targets else "no gate"
    LOGGER.info("Starting Cineflow bot in polling mode (%s, proxy mode %s).", gate_note, config.tmdb.proxy_mode)
    application.run_polling()


if __name__ == "__main__":
    main()
