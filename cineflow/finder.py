from __future__ import annotations

"""
High-level title and id resolution.

Asks TMDB, picks the winner, and knows which back door to try when the
front door answers with a nameless blob.
"""

import logging
from typing import List, Optional

from .models import MediaResult, SearchPage
from .tmdb import MULTI, TmdbClient, TmdbNotFoundError

LOGGER = logging.getLogger(__name__)


class MediaFinder:
    """Wraps TmdbClient to search, resolve ids and choose the best match."""

    def __init__(self, tmdb_client: TmdbClient):
        self._tmdb = tmdb_client

    def search_multi(self, query: str, page: int = 1) -> SearchPage:
        """
        Fetch one page of mixed movie and TV results.

        Parameters
        ----------
        query : str
            Search term supplied by the user.
        page : int, optional
            1-based page number.

        Returns
        -------
        SearchPage
            Movies and shows with posters, plus the provider's page count.
        """

        result = self._tmdb.search(MULTI, query, page)
        LOGGER.debug("Finder received %d multi results for %r page %d", len(result.items), query, page)
        return result

    def find_title(self, kind: str, query: str) -> Optional[MediaResult]:
        """
        Search one media kind and return the best match for ``query``.

        Returns
        -------
        MediaResult | None
            The exact (case-insensitive) title match if there is one, the
            first result otherwise, ``None`` for an empty result set.
        """

        result = self._tmdb.search(kind, query, 1)
        return self.pick_best(query, result.items)

    def resolve_id(self, kind: str, tmdb_id: int) -> Optional[MediaResult]:
        """
        Look up ``tmdb_id`` directly, then through the external id endpoint
        when the direct lookup gave us nothing with a title. A 404 on the
        direct lookup is final.
        """

        try:
            item = self._tmdb.lookup_by_id(kind, tmdb_id, missing_ok=False)
        except TmdbNotFoundError:
            return None
        if item is not None:
            return item
        LOGGER.info("No usable %s for id %s, trying external id lookup", kind, tmdb_id)
        return self._tmdb.lookup_by_external_id(tmdb_id)

    def lookup(self, kind: str, tmdb_id: int) -> Optional[MediaResult]:
        return self._tmdb.lookup_by_id(kind, tmdb_id)

    @staticmethod
    def pick_best(query: str, items: List[MediaResult]) -> Optional[MediaResult]:
        if not items:
            return None
        wanted = query.strip().lower()
        for item in items:
            if item.title.lower() == wanted:
                return item
        return items[0]
