from __future__ import annotations

"""
Convenience imports for the Cineflow bot package.

Expose the important bits so downstream code can grab them
without complaining.
"""

from .config import AppConfig, ConfigError, ConfigLoader, SiteConfig, TelegramConfig, TmdbConfig
from .finder import MediaFinder
from .models import MediaResult, Movie, SearchPage, Show
from .tmdb import TmdbClient, TmdbError, TmdbNotFoundError, TmdbRequestError, TmdbUnauthorizedError

__all__ = [
    "AppConfig",
    "ConfigError",
    "ConfigLoader",
    "SiteConfig",
    "TelegramConfig",
    "TmdbConfig",
    "MediaFinder",
    "MediaResult",
    "Movie",
    "SearchPage",
    "Show",
    "TmdbClient",
    "TmdbError",
    "TmdbNotFoundError",
    "TmdbRequestError",
    "TmdbUnauthorizedError",
]
