from __future__ import annotations

"""
TMDB client logic.

This module translates polite search queries into TMDB calls, optionally
smuggled through a URL-rewriting proxy, and hands back results that all
look the same no matter what TMDB called their fields.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlencode

import requests

from .config import TmdbConfig
from .models import MEDIA_KINDS, MOVIE, TV, MediaResult, Movie, SearchPage, Show

LOGGER = logging.getLogger(__name__)

MULTI = "multi"
_RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class TmdbError(Exception):
    """Base class for everything TMDB can throw at us."""


class TmdbNotFoundError(TmdbError):
    """The provider answered, and the answer was 'never heard of it'."""


class TmdbRequestError(TmdbError):
    """Transport failure or an HTTP status we can't do anything with."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TmdbUnauthorizedError(TmdbRequestError):
    """401/403: bad key, or the upstream has decided we're not welcome."""


class _RetryableError(Exception):
    def __init__(self, error: TmdbRequestError) -> None:
        super().__init__(str(error))
        self.error = error


def _year_from(payload: Dict[str, Any]) -> Optional[str]:
    date = payload.get("release_date") or payload.get("first_air_date") or ""
    year = str(date)[:4]
    return year if len(year) == 4 and year.isdigit() else None


def normalize(kind: str, payload: Dict[str, Any]) -> Optional[MediaResult]:
    """
    Map a raw TMDB payload onto :class:`Movie` or :class:`Show`.

    Parameters
    ----------
    kind : str
        ``"movie"`` or ``"tv"``.
    payload : dict[str, Any]
        Item as returned by any TMDB endpoint.

    Returns
    -------
    MediaResult | None
        ``None`` when the payload has no usable id or title.
    """

    if kind == MOVIE:
        cls: type[MediaResult] = Movie
        title = payload.get("title") or payload.get("original_title") or payload.get("name")
    elif kind == TV:
        cls = Show
        title = payload.get("name") or payload.get("original_name") or payload.get("title")
    else:
        return None

    try:
        tmdb_id = int(payload["id"])
    except (KeyError, TypeError, ValueError):
        return None
    if not title or not str(title).strip():
        return None

    return cls(
        tmdb_id=tmdb_id,
        title=str(title).strip(),
        year=_year_from(payload),
        poster_path=payload.get("poster_path") or None,
        overview=(payload.get("overview") or "").strip() or None,
    )


class TmdbClient:
    """Thin wrapper around requests.Session dedicated to the TMDB v3 API."""

    def __init__(
        self,
        config: TmdbConfig,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Parameters
        ----------
        config : TmdbConfig
            Connection details, proxy routing and retry etiquette.
        sleep, clock : callable, optional
            Hooks for the backoff loop, swapped out in tests.
        """

        self.config = config
        self._sleep = sleep
        self._clock = clock
        self._session_local = threading.local()

    def _make_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": self.config.user_agent, "Accept": "application/json"})
        return session

    def _get_session(self) -> requests.Session:
        """
        Return a thread-local session instance.
        """

        session = getattr(self._session_local, "session", None)
        if session is None:
            session = self._make_session()
            self._session_local.session = session
        return session

    def search(self, kind: str, query: str, page: int = 1) -> SearchPage:
        """
        Search TMDB for ``query``.

        Parameters
        ----------
        kind : str
            ``"movie"``, ``"tv"`` or ``"multi"``.
        query : str
            Search phrase.
        page : int, optional
            1-based page number.

        Returns
        -------
        SearchPage
            Normalized items and the provider's page count. Multi searches
            only keep movies and shows that come with a poster.

        Raises
        ------
        TmdbRequestError
            When every route and every retry failed.
        """

        if kind not in MEDIA_KINDS and kind != MULTI:
            raise ValueError(f"Unsupported search kind: {kind}")
        query = query.strip()
        if not query:
            return SearchPage(page=page)

        try:
            payload = self._get_json(
                f"/search/{kind}",
                {"query": query, "page": str(page), "include_adult": "false"},
            )
        except TmdbNotFoundError:
            return SearchPage(page=page)

        items: List[MediaResult] = []
        for raw in payload.get("results") or []:
            if not isinstance(raw, dict):
                continue
            if kind == MULTI:
                item_kind = raw.get("media_type")
                if item_kind not in MEDIA_KINDS or not raw.get("poster_path"):
                    continue
            else:
                item_kind = kind
            item = normalize(item_kind, raw)
            if item is not None:
                items.append(item)

        try:
            total_pages = int(payload.get("total_pages") or 0)
        except (TypeError, ValueError):
            total_pages = 0

        LOGGER.debug("TMDB %s search %r page %d: %d usable items of %d pages", kind, query, page, len(items), total_pages)
        return SearchPage(items=items, page=page, total_pages=total_pages)

    def lookup_by_id(self, kind: str, tmdb_id: int, missing_ok: bool = True) -> Optional[MediaResult]:
        """
        Fetch a single movie or show by TMDB id.

        Parameters
        ----------
        kind : str
            ``"movie"`` or ``"tv"``.
        tmdb_id : int
            TMDB id.
        missing_ok : bool, optional
            When false, a 404 raises :class:`TmdbNotFoundError` instead of
            returning ``None``, so callers can tell it from a titleless payload.

        Returns
        -------
        MediaResult | None
            ``None`` when the payload carries no title (or TMDB has no such id
            and ``missing_ok`` is set).
        """

        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unsupported media kind: {kind}")
        try:
            payload = self._get_json(f"/{kind}/{int(tmdb_id)}", {})
        except TmdbNotFoundError:
            LOGGER.info("TMDB has no %s with id %s", kind, tmdb_id)
            if not missing_ok:
                raise
            return None
        return normalize(kind, payload)

    def lookup_by_external_id(self, external_id: str | int) -> Optional[MediaResult]:
        """
        Resolve an external (IMDb) id through TMDB's ``/find`` endpoint.

        Movie matches win over TV matches.
        """

        try:
            payload = self._get_json(f"/find/{external_id}", {"external_source": "imdb_id"})
        except TmdbNotFoundError:
            return None

        for kind, key in ((MOVIE, "movie_results"), (TV, "tv_results")):
            for raw in payload.get(key) or []:
                item = normalize(kind, raw) if isinstance(raw, dict) else None
                if item is not None:
                    return item
        return None

    def build_url(self, path: str, params: Dict[str, str]) -> str:
        """
        Build the direct TMDB URL for ``path``, API key included.
        """

        query = dict(params)
        query["api_key"] = self.config.api_key
        return f"{self.config.base_url}{path}?{urlencode(query)}"

    def proxied(self, url: str) -> str:
        """
        Wrap ``url`` for the proxy endpoint: the whole target URL becomes one
        percent-encoded parameter appended to ``proxy_url``.
        """

        if not self.config.proxy_url:
            raise ValueError("No proxy_url configured")
        return f"{self.config.proxy_url}{quote(url, safe='')}"

    def _routes(self, url: str) -> List[tuple[str, str]]:
        mode = self.config.proxy_mode
        if mode == "always":
            return [("proxy", self.proxied(url))]
        if mode == "fallback":
            return [("direct", url), ("proxy", self.proxied(url))]
        return [("direct", url)]

    def _get_json(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = self.build_url(path, params)
        last_error: Optional[TmdbRequestError] = None
        for route, target in self._routes(url):
            try:
                return self._request_with_retry(target, path, route)
            except TmdbRequestError as exc:
                # Blocked direct access is the reason the proxy route exists.
                LOGGER.warning("TMDB %s route failed for %s: %s", route, path, exc)
                last_error = exc
        assert last_error is not None
        raise last_error

    def _request_with_retry(self, url: str, path: str, route: str) -> Dict[str, Any]:
        """
        GET ``url`` with bounded exponential backoff.

        Retries transport failures, 429 and 5xx, at most ``max_attempts``
        times and never past ``max_elapsed`` seconds in total.

        Raises
        ------
        TmdbNotFoundError
            On 404, without retrying.
        TmdbUnauthorizedError
            On 401/403, without retrying.
        TmdbRequestError
            On any other failure once the retry budget is spent.
        """

        started = self._clock()
        delay = self.config.backoff_base
        attempts = self.config.max_attempts
        error: Optional[TmdbRequestError] = None

        for attempt in range(1, attempts + 1):
            try:
                return self._request_once(url, path)
            except _RetryableError as exc:
                error = exc.error

            if attempt >= attempts:
                break
            elapsed = self._clock() - started
            if elapsed + delay > self.config.max_elapsed:
                LOGGER.warning("TMDB %s %s: giving up after %.1fs", route, path, elapsed)
                break
            LOGGER.warning(
                "TMDB %s %s attempt %d/%d failed (%s), retrying in %.1fs",
                route,
                path,
                attempt,
                attempts,
                error,
                delay,
            )
            self._sleep(delay)
            delay *= 2

        assert error is not None
        raise error

    def _request_once(self, url: str, path: str) -> Dict[str, Any]:
        session = self._get_session()
        try:
            response = session.get(url, timeout=self.config.request_timeout)
        except requests.RequestException as exc:
            raise _RetryableError(TmdbRequestError(f"TMDB request for {path} failed: {exc}")) from exc

        status = response.status_code
        if status == 404:
            raise TmdbNotFoundError(f"TMDB returned 404 for {path}")
        if status in (401, 403):
            raise TmdbUnauthorizedError(f"TMDB refused {path} with status {status}", status_code=status)
        if status in _RETRYABLE_STATUS:
            raise _RetryableError(TmdbRequestError(f"TMDB status {status} for {path}", status_code=status))
        if status != 200:
            LOGGER.warning("TMDB status %s for %s, head: %r", status, path, response.text[:300])
            raise TmdbRequestError(f"TMDB status {status} for {path}", status_code=status)

        try:
            payload = response.json()
        except ValueError as exc:
            # Proxies love to answer 200 with an HTML error page.
            raise _RetryableError(TmdbRequestError(f"TMDB returned non-JSON for {path}", status_code=status)) from exc
        if not isinstance(payload, dict):
            raise TmdbRequestError(f"TMDB returned unexpected payload for {path}", status_code=status)
        return payload
