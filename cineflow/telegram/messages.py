from typing import Optional

from telegram.helpers import escape_markdown

from cineflow.models import MediaResult

# Telegram caps photo captions at 1024 characters.
MAX_CAPTION = 1024
MAX_OVERVIEW = 700


def _md(text: str) -> str:
    return escape_markdown(text, version=1)


class MessageFactory:
    def __init__(self, bot_name: str = "Cineflow Bot") -> None:
        self._bot_name = bot_name

    def welcome(self) -> str:
        return (
            f"👋 Welcome to {self._bot_name}!\n\n"
            "🎥 Search movies & TV shows and watch them directly on Cineflow.\n\n"
            "Just send a title, or use one of these:\n"
            "/movie <movie name>\n"
            "/tv <tv show name>\n"
            "/id <movie|tv> <tmdb_id>"
        )

    @staticmethod
    def help_text() -> str:
        return (
            "Commands:\n"
            "- `/movie <title>`: best movie match for the title.\n"
            "- `/tv <title>`: best TV show match for the title.\n"
            "- `/id <movie|tv> <number>`: look up a TMDB id.\n"
            "- Any other text: browse movies and shows page by page, then tap one.\n"
            "Result lists clean themselves up after a few minutes."
        )

    @staticmethod
    def results_header(query: str, page: int, total_pages: int) -> str:
        return f"🔎 Results for *{_md(query)}*\nPage {page} of {max(total_pages, 1)}. Tap a title for links."

    @staticmethod
    def detail_caption(item: MediaResult, limit: int = MAX_CAPTION) -> str:
        overview = item.overview or "No overview available"
        if len(overview) > MAX_OVERVIEW:
            overview = overview[: MAX_OVERVIEW - 1].rstrip() + "…"
        caption = f"*{_md(item.display_title())}* ({item.label})\n\n{_md(overview)}"
        if len(caption) > limit:
            caption = caption[: limit - 1] + "…"
        return caption

    @staticmethod
    def usage(command: str) -> str:
        if command == "id":
            return "❌ Usage: /id <movie|tv> <tmdb_id>\nExample: /id movie 27205"
        example = "RRR" if command == "movie" else "Friends"
        noun = "movie" if command == "movie" else "TV show"
        return f"❌ Please enter a {noun} name. Example:\n/{command} {example}"

    @staticmethod
    def slow_down() -> str:
        return "⏳ Slow down a little, try again in a couple of seconds."

    @staticmethod
    def not_authorized(has_links: bool) -> str:
        if has_links:
            return "🔒 Join our channel to use this bot, then send your search again."
        return "🔒 This bot is only available to members of our community."

    @staticmethod
    def no_results(query: Optional[str] = None) -> str:
        if query:
            return f"❌ No results found for “{query}”. Please try again with a full name."
        return "❌ No results found. Please try again with a full name."

    @staticmethod
    def id_not_found(kind: str, tmdb_id: int) -> str:
        return f"❌ No {kind} found with ID {tmdb_id}. Please check the ID and try again."

    @staticmethod
    def item_not_found() -> str:
        return "❌ That title isn't available anymore. Try searching again."

    @staticmethod
    def search_expired() -> str:
        return "⌛ This search has expired. Send the title again to start over."

    @staticmethod
    def upstream_blocked() -> str:
        return "🚫 The movie database refused our request right now. Try again later."

    @staticmethod
    def upstream_failed() -> str:
        return "⚠️ Something went wrong. Try again later."
