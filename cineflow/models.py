from __future__ import annotations

"""
Data models for Cineflow.

TMDB can't decide whether a thing has a ``title`` or a ``name``, so we
decide for it once, right here, and everybody downstream gets one shape.
"""

from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Union

MOVIE = "movie"
TV = "tv"
MEDIA_KINDS = (MOVIE, TV)


@dataclass(frozen=True)
class MediaResult:
    """Canonical summary of a provider item, whatever its original costume was."""

    kind: ClassVar[str] = ""
    label: ClassVar[str] = ""

    tmdb_id: int
    title: str
    year: Optional[str] = None
    poster_path: Optional[str] = None
    overview: Optional[str] = None

    def display_title(self) -> str:
        if self.year:
            return f"{self.title} ({self.year})"
        return self.title

    def poster_url(self, image_base_url: str) -> Optional[str]:
        """
        Build the absolute poster URL.

        Parameters
        ----------
        image_base_url : str
            Size-qualified image host, e.g. ``https://image.tmdb.org/t/p/w500``.

        Returns
        -------
        str | None
            Full URL, or ``None`` when the provider never sent any art.
        """

        if not self.poster_path:
            return None
        return f"{image_base_url.rstrip('/')}/{self.poster_path.lstrip('/')}"


@dataclass(frozen=True)
class Movie(MediaResult):
    kind: ClassVar[str] = MOVIE
    label: ClassVar[str] = "Movie"


@dataclass(frozen=True)
class Show(MediaResult):
    kind: ClassVar[str] = TV
    label: ClassVar[str] = "TV Show"


Media = Union[Movie, Show]


@dataclass
class SearchPage:
    """One page of search results plus the page count TMDB bragged about."""

    items: List[MediaResult] = field(default_factory=list)
    page: int = 1
    total_pages: int = 0
