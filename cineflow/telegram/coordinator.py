import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

from telegram import InlineKeyboardMarkup, Message
from telegram.constants import ParseMode
from telegram.error import TelegramError

from cineflow.finder import MediaFinder
from cineflow.models import MediaResult
from cineflow.tmdb import TmdbRequestError, TmdbUnauthorizedError

from .gate import MembershipGate
from .keyboards import KeyboardBuilder
from .messages import MessageFactory
from .ratelimit import RateLimiter
from .scheduler import DeletionScheduler
from .sessions import SearchSession, SessionStore

LOGGER = logging.getLogger(__name__)

_FAILED: Any = object()


class SessionCoordinator:
    """Runs searches, paginates them and renders detail cards.

    Each user has at most one live result list. A new search or a page change
    replaces it: the old list's deletion timer is cancelled and the old
    message removed. Results that come back for a session that was replaced
    while the lookup was in flight are dropped.
    """

    def __init__(
        self,
        finder: MediaFinder,
        store: SessionStore,
        scheduler: DeletionScheduler,
        rate_limiter: RateLimiter,
        keyboards: KeyboardBuilder,
        messages: MessageFactory,
        image_base_url: str,
        gate: Optional[MembershipGate] = None,
        session_ttl: float = 180.0,
        notice_ttl: float = 30.0,
        max_pages: int = 5,
    ) -> None:
        self._finder = finder
        self._store = store
        self._scheduler = scheduler
        self._rate_limiter = rate_limiter
        self._keyboards = keyboards
        self._messages = messages
        self._image_base_url = image_base_url
        self._gate = gate
        self._session_ttl = session_ttl
        self._notice_ttl = notice_ttl
        self._max_pages = max(1, max_pages)

    async def start_search(self, bot: Any, user_id: int, chat_id: int, query: str) -> Optional[SearchSession]:
        query = query.strip()
        if not query:
            return None
        if not await self._admit(bot, user_id, chat_id):
            return None

        session, previous = self._store.begin(user_id, query, page=1)
        await self._retire(bot, previous)
        return await self._render_page(bot, session, chat_id)

    async def change_page(
        self,
        bot: Any,
        user_id: int,
        chat_id: int,
        message_id: Optional[int],
        page: int,
    ) -> Optional[SearchSession]:
        """Move the user's live result list to ``page``.

        Only a tap on the message that currently shows the user's own list
        counts; anything else (someone else's list in a group, a list that was
        already replaced) gets the expired notice and changes nothing.
        """

        if not await self._admit(bot, user_id, chat_id):
            return None

        current = self._store.get(user_id)
        if current is None or current.rendered_message != (chat_id, message_id):
            await self._notice(bot, chat_id, self._messages.search_expired(), ttl=self._notice_ttl)
            return None

        target = max(1, page)
        if current.total_pages:
            target = min(target, current.total_pages)
        if target == current.page:
            return current

        session, previous = self._store.begin(user_id, current.query, page=target)
        await self._retire(bot, previous)
        return await self._render_page(bot, session, chat_id)

    async def select_item(self, bot: Any, user_id: int, chat_id: int, kind: str, tmdb_id: int) -> Optional[MediaResult]:
        if not await self._admit(bot, user_id, chat_id):
            return None
        item = await self._fetch(bot, chat_id, self._finder.lookup, kind, tmdb_id)
        if item is _FAILED:
            return None
        if item is None:
            await self._notice(bot, chat_id, self._messages.item_not_found(), ttl=self._notice_ttl)
            return None
        await self._render_detail(bot, chat_id, item)
        return item

    async def lookup_title(self, bot: Any, user_id: int, chat_id: int, kind: str, query: str) -> Optional[MediaResult]:
        if not await self._admit(bot, user_id, chat_id):
            return None
        item = await self._fetch(bot, chat_id, self._finder.find_title, kind, query)
        if item is _FAILED:
            return None
        if item is None:
            await self._notice(bot, chat_id, self._messages.no_results(query), ttl=self._notice_ttl)
            return None
        await self._render_detail(bot, chat_id, item)
        return item

    async def lookup_id(self, bot: Any, user_id: int, chat_id: int, kind: str, tmdb_id: int) -> Optional[MediaResult]:
        if not await self._admit(bot, user_id, chat_id):
            return None
        item = await self._fetch(bot, chat_id, self._finder.resolve_id, kind, tmdb_id)
        if item is _FAILED:
            return None
        if item is None:
            await self._notice(bot, chat_id, self._messages.id_not_found(kind, tmdb_id), ttl=self._notice_ttl)
            return None
        await self._render_detail(bot, chat_id, item)
        return item

    async def _admit(self, bot: Any, user_id: int, chat_id: int) -> bool:
        if not self._rate_limiter.admit(user_id):
            await self._notice(bot, chat_id, self._messages.slow_down(), ttl=self._notice_ttl)
            return False
        if self._gate is not None and not await self._gate.authorize(bot, user_id):
            join = self._keyboards.join_keyboard(self._gate.targets)
            await self._notice(bot, chat_id, self._messages.not_authorized(join is not None), reply_markup=join)
            return False
        return True

    async def _retire(self, bot: Any, previous: Optional[SearchSession]) -> None:
        if previous is None or previous.rendered_message is None:
            return
        await self._scheduler.delete_now(bot, *previous.rendered_message)

    async def _render_page(self, bot: Any, session: SearchSession, chat_id: int) -> Optional[SearchSession]:
        result = await self._fetch(bot, chat_id, self._finder.search_multi, session.query, session.page)
        if result is _FAILED:
            self._store.discard(session)
            return None
        if not self._store.is_current(session):
            LOGGER.info("Dropping page %d of %r for user %s: search was replaced", session.page, session.query, session.owner)
            return None
        if not result.items:
            self._store.discard(session)
            await self._notice(bot, chat_id, self._messages.no_results(session.query), ttl=self._notice_ttl)
            return None

        session.results = list(result.items)
        session.total_pages = max(1, min(result.total_pages, self._max_pages))
        message = await self._send(
            bot,
            chat_id,
            self._messages.results_header(session.query, session.page, session.total_pages),
            reply_markup=self._keyboards.results_keyboard(session.results, session.page, session.total_pages),
            parse_mode=ParseMode.MARKDOWN,
        )
        if message is None:
            self._store.discard(session)
            return None

        if not self._store.attach(session, chat_id, message.message_id):
            # Replaced while we were sending; take our message back off the screen.
            await self._scheduler.delete_now(bot, chat_id, message.message_id)
            return None
        self._scheduler.schedule(
            bot,
            chat_id,
            message.message_id,
            self._session_ttl,
            on_expire=partial(self._store.expire, session.owner, chat_id, message.message_id),
        )
        LOGGER.debug("Rendered page %d/%d of %r for user %s", session.page, session.total_pages, session.query, session.owner)
        return session

    async def _render_detail(self, bot: Any, chat_id: int, item: MediaResult) -> Optional[Message]:
        caption = self._messages.detail_caption(item)
        markup = self._keyboards.detail_keyboard(item)
        poster = item.poster_url(self._image_base_url)
        if poster:
            try:
                return await bot.send_photo(
                    chat_id=chat_id,
                    photo=poster,
                    caption=caption,
                    parse_mode=ParseMode.MARKDOWN,
                    reply_markup=markup,
                )
            except TelegramError as exc:
                LOGGER.warning("Poster send failed for %s %s, falling back to text: %s", item.kind, item.tmdb_id, exc)
        return await self._send(bot, chat_id, caption, reply_markup=markup, parse_mode=ParseMode.MARKDOWN)

    async def _fetch(self, bot: Any, chat_id: int, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args))
        except TmdbUnauthorizedError as exc:
            LOGGER.warning("TMDB refused the request: %s", exc)
            await self._notice(bot, chat_id, self._messages.upstream_blocked(), ttl=self._notice_ttl)
        except TmdbRequestError as exc:
            LOGGER.error("TMDB request failed: %s", exc)
            await self._notice(bot, chat_id, self._messages.upstream_failed(), ttl=self._notice_ttl)
        return _FAILED

    async def _notice(
        self,
        bot: Any,
        chat_id: int,
        text: str,
        ttl: Optional[float] = None,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
    ) -> Optional[Message]:
        message = await self._send(bot, chat_id, text, reply_markup=reply_markup)
        if message is not None and ttl:
            self._scheduler.schedule(bot, chat_id, message.message_id, ttl)
        return message

    @staticmethod
    async def _send(
        bot: Any,
        chat_id: int,
        text: str,
        reply_markup: Optional[InlineKeyboardMarkup] = None,
        parse_mode: Optional[str] = None,
    ) -> Optional[Message]:
        try:
            return await bot.send_message(chat_id=chat_id, text=text, parse_mode=parse_mode, reply_markup=reply_markup)
        except TelegramError as exc:
            LOGGER.warning("Could not send message to chat %s: %s", chat_id, exc)
            return None

