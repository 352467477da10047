from typing import List, Optional, Sequence, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from cineflow.config import GateTarget
from cineflow.models import MEDIA_KINDS, MOVIE, MediaResult

SELECT_PREFIX = "select_"
PREV_PREFIX = "search_prev_"
NEXT_PREFIX = "search_next_"
NOOP_CALLBACK = "noop"

_KIND_ICONS = {MOVIE: "🎬"}
_DEFAULT_ICON = "📺"


def select_callback(kind: str, tmdb_id: int) -> str:
    return f"{SELECT_PREFIX}{kind}_{tmdb_id}"


def parse_select(data: str) -> Optional[Tuple[str, int]]:
    """Decode ``select_<kind>_<id>``; ``None`` for anything malformed."""

    if not data.startswith(SELECT_PREFIX):
        return None
    kind, _, raw_id = data[len(SELECT_PREFIX) :].partition("_")
    if kind not in MEDIA_KINDS or not raw_id.isdigit():
        return None
    return kind, int(raw_id)


def parse_page(data: str) -> Optional[int]:
    """Decode ``search_prev_<page>`` / ``search_next_<page>`` into the target page."""

    for prefix in (PREV_PREFIX, NEXT_PREFIX):
        if data.startswith(prefix):
            raw = data[len(prefix) :]
            if raw.isdigit() and int(raw) >= 1:
                return int(raw)
            return None
    return None


class KeyboardBuilder:
    def __init__(
        self,
        site_url: str,
        max_per_row: int = 2,
        long_label: int = 24,
        max_label: int = 40,
    ) -> None:
        self._site_url = site_url.rstrip("/")
        self._max_per_row = max(1, max_per_row)
        self._long_label = long_label
        self._max_label = max_label

    def result_label(self, item: MediaResult) -> str:
        label = f"{_KIND_ICONS.get(item.kind, _DEFAULT_ICON)} {item.display_title()}"
        if len(label) > self._max_label:
            label = label[: self._max_label - 1].rstrip() + "…"
        return label

    def results_keyboard(self, items: Sequence[MediaResult], page: int, total_pages: int) -> InlineKeyboardMarkup:
        """Grid of result buttons plus a pagination row when there is more than one page.

        Rows hold up to ``max_per_row`` buttons; a label longer than
        ``long_label`` characters gets a row to itself.
        """

        buttons: List[List[InlineKeyboardButton]] = []
        row: List[InlineKeyboardButton] = []
        for item in items:
            label = self.result_label(item)
            button = InlineKeyboardButton(label, callback_data=select_callback(item.kind, item.tmdb_id))
            if len(label) > self._long_label:
                if row:
                    buttons.append(row)
                    row = []
                buttons.append([button])
                continue
            row.append(button)
            if len(row) == self._max_per_row:
                buttons.append(row)
                row = []
        if row:
            buttons.append(row)

        pagination = self.pagination_row(page, total_pages)
        if pagination:
            buttons.append(pagination)
        return InlineKeyboardMarkup(buttons)

    @staticmethod
    def pagination_row(page: int, total_pages: int) -> List[InlineKeyboardButton]:
        if total_pages <= 1:
            return []
        row: List[InlineKeyboardButton] = []
        if page > 1:
            row.append(InlineKeyboardButton("◀️ Previous", callback_data=f"{PREV_PREFIX}{page - 1}"))
        row.append(InlineKeyboardButton(f"📄 {page}/{total_pages}", callback_data=NOOP_CALLBACK))
        if page < total_pages:
            row.append(InlineKeyboardButton("Next ▶️", callback_data=f"{NEXT_PREFIX}{page + 1}"))
        return row

    def watch_url(self, item: MediaResult) -> str:
        return f"{self._site_url}/{item.kind}/{item.tmdb_id}"

    def download_url(self, item: MediaResult) -> str:
        return f"{self._site_url}/download/{item.kind}/{item.tmdb_id}"

    def share_text(self, item: MediaResult) -> str:
        return f"Check out {item.title} on Cineflow:\n{self.watch_url(item)}"

    def detail_keyboard(self, item: MediaResult) -> InlineKeyboardMarkup:
        watch_label = "🎬 Watch Movie" if item.kind == MOVIE else "📺 Watch Show"
        return InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton(watch_label, url=self.watch_url(item)),
                    InlineKeyboardButton("⬇️ Download", url=self.download_url(item)),
                ],
                [InlineKeyboardButton("🔗 Share", switch_inline_query=self.share_text(item))],
            ]
        )

    @staticmethod
    def join_keyboard(targets: Sequence[GateTarget]) -> Optional[InlineKeyboardMarkup]:
        links = [target.invite_link for target in targets if target.invite_link]
        if not links:
            return None
        if len(links) == 1:
            return InlineKeyboardMarkup([[InlineKeyboardButton("📢 Join", url=links[0])]])
        return InlineKeyboardMarkup(
            [[InlineKeyboardButton(f"📢 Join #{idx}", url=link)] for idx, link in enumerate(links, start=1)]
        )
