from __future__ import annotations

"""Tests for the TMDB client: normalization, filtering, retries and the proxy detour."""

import threading
from typing import Any, List
from unittest.mock import MagicMock
from urllib.parse import unquote

import pytest
import requests

from cineflow.config import TmdbConfig
from cineflow.models import Movie, Show
from cineflow.tmdb import (
    MULTI,
    TmdbClient,
    TmdbNotFoundError,
    TmdbRequestError,
    TmdbUnauthorizedError,
    normalize,
)
from fakes import json_response


def _make_client(responses: List[Any], **config_kwargs: Any) -> tuple[TmdbClient, MagicMock, List[float]]:
    config = TmdbConfig(api_key="KEY", base_url="https://api.example/3", **config_kwargs)
    delays: List[float] = []
    client = TmdbClient(config, sleep=delays.append, clock=lambda: 0.0)
    session = MagicMock()
    session.get.side_effect = responses
    client._get_session = lambda: session  # type: ignore[method-assign]
    return client, session, delays


def test_normalize_movie_and_show_share_one_shape() -> None:
    movie = normalize("movie", {"id": 27205, "title": "Inception", "release_date": "2010-07-15", "poster_path": "/i.jpg"})
    show = normalize("tv", {"id": 1399, "name": "Game of Thrones", "first_air_date": "2011-04-17", "overview": " Winter. "})
    assert isinstance(movie, Movie)
    assert (movie.tmdb_id, movie.title, movie.year, movie.kind) == (27205, "Inception", "2010", "movie")
    assert isinstance(show, Show)
    assert (show.title, show.year, show.overview, show.kind) == ("Game of Thrones", "2011", "Winter.", "tv")


def test_normalize_rejects_payload_without_title() -> None:
    assert normalize("movie", {"id": 1, "title": ""}) is None
    assert normalize("tv", {"name": "No id"}) is None
    assert normalize("person", {"id": 1, "name": "Someone"}) is None


def test_multi_search_keeps_only_movies_and_shows_with_posters() -> None:
    payload = {
        "total_pages": 4,
        "results": [
            {"media_type": "movie", "id": 1, "title": "Batman", "poster_path": "/a.jpg"},
            {"media_type": "tv", "id": 2, "name": "Batman: TAS", "poster_path": "/b.jpg"},
            {"media_type": "movie", "id": 3, "title": "Batman (no art)", "poster_path": None},
            {"media_type": "person", "id": 4, "name": "Adam West", "profile_path": "/c.jpg", "poster_path": "/c.jpg"},
        ],
    }
    client, _, _ = _make_client([json_response(payload)])
    page = client.search(MULTI, "batman", 1)
    assert [item.tmdb_id for item in page.items] == [1, 2]
    assert all(item.poster_path and item.kind in ("movie", "tv") for item in page.items)
    assert page.total_pages == 4


def test_kind_search_keeps_items_without_posters() -> None:
    payload = {"total_pages": 1, "results": [{"id": 9, "title": "Obscure", "poster_path": None}]}
    client, session, _ = _make_client([json_response(payload)])
    page = client.search("movie", "obscure")
    assert [item.title for item in page.items] == ["Obscure"]
    url = session.get.call_args[0][0]
    assert url.startswith("https://api.example/3/search/movie?")
    assert "api_key=KEY" in url


def test_retry_backs_off_and_returns_third_attempt() -> None:
    ok = json_response({"id": 1399, "name": "Game of Thrones"})
    client, session, delays = _make_client(
        [requests.ConnectionError("boom"), json_response({}, status=503), ok],
    )
    item = client.lookup_by_id("tv", 1399)
    assert item is not None and item.title == "Game of Thrones"
    assert session.get.call_count == 3
    assert delays == [1.0, 2.0]


def test_retry_gives_up_after_max_attempts() -> None:
    client, session, delays = _make_client([requests.Timeout("slow")] * 5)
    with pytest.raises(TmdbRequestError):
        client.search(MULTI, "batman")
    assert session.get.call_count == 3
    assert delays == [1.0, 2.0]


def test_retry_respects_elapsed_budget() -> None:
    client, session, delays = _make_client([requests.ConnectionError("x")] * 3, max_elapsed=1.5)
    with pytest.raises(TmdbRequestError):
        client.search(MULTI, "batman")
    # 1s backoff fits the budget, the following 2s does not.
    assert session.get.call_count == 2
    assert delays == [1.0]


def test_unauthorized_is_not_retried() -> None:
    client, session, delays = _make_client([json_response({}, status=401)])
    with pytest.raises(TmdbUnauthorizedError):
        client.search(MULTI, "batman")
    assert session.get.call_count == 1
    assert delays == []


def test_not_found_lookup_returns_none() -> None:
    client, _, _ = _make_client([json_response({"status_message": "nope"}, status=404)])
    assert client.lookup_by_id("movie", 999999) is None


def test_not_found_lookup_can_raise() -> None:
    client, session, _ = _make_client([json_response({"status_message": "nope"}, status=404)])
    with pytest.raises(TmdbNotFoundError):
        client.lookup_by_id("movie", 999999, missing_ok=False)
    assert session.get.call_count == 1


def test_lookup_without_title_returns_none() -> None:
    client, _, _ = _make_client([json_response({"id": 5, "success": False})])
    assert client.lookup_by_id("movie", 5) is None


def test_external_id_prefers_movie_results() -> None:
    payload = {
        "movie_results": [{"id": 11, "title": "Star Wars"}],
        "tv_results": [{"id": 12, "name": "Star Wars: Andor"}],
    }
    client, session, _ = _make_client([json_response(payload)])
    item = client.lookup_by_external_id("tt0076759")
    assert isinstance(item, Movie) and item.tmdb_id == 11
    assert "/find/tt0076759?" in session.get.call_args[0][0]
    assert "external_source=imdb_id" in session.get.call_args[0][0]


def test_proxy_always_encodes_full_target_url() -> None:
    client, session, _ = _make_client(
        [json_response({"results": [], "total_pages": 0})],
        proxy_url="https://proxy.example/fetch?url=",
        proxy_mode="always",
    )
    client.search("tv", "friends")
    url = session.get.call_args[0][0]
    assert url.startswith("https://proxy.example/fetch?url=https%3A%2F%2Fapi.example%2F3%2Fsearch%2Ftv%3F")
    assert unquote(url[len("https://proxy.example/fetch?url=") :]).endswith("api_key=KEY")


def test_proxy_fallback_after_direct_route_fails() -> None:
    ok = json_response({"id": 27205, "title": "Inception"})
    client, session, _ = _make_client(
        [json_response({}, status=403), ok],
        proxy_url="https://proxy.example/?u=",
        proxy_mode="fallback",
    )
    item = client.lookup_by_id("movie", 27205)
    assert item is not None and item.title == "Inception"
    first, second = (call[0][0] for call in session.get.call_args_list)
    assert first.startswith("https://api.example/3/movie/27205?")
    assert second.startswith("https://proxy.example/?u=")


def test_proxy_fallback_surfaces_error_when_both_routes_fail() -> None:
    client, session, _ = _make_client(
        [requests.ConnectionError("direct")] * 3 + [json_response({}, status=500)] * 3,
        proxy_url="https://proxy.example/?u=",
        proxy_mode="fallback",
    )
    with pytest.raises(TmdbRequestError):
        client.search(MULTI, "batman")
    assert session.get.call_count == 6


def test_session_reused_within_thread() -> None:
    client = TmdbClient(TmdbConfig(api_key="KEY"))
    assert client._get_session() is client._get_session()


def test_session_is_thread_local() -> None:
    client = TmdbClient(TmdbConfig(api_key="KEY"))
    sessions = []

    def grab_session() -> None:
        sessions.append(client._get_session())

    threads = [threading.Thread(target=grab_session) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(sessions) == 2
    assert sessions[0] is not sessions[1]
