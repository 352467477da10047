import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from telegram import BotCommand, Update
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from cineflow.health import HealthServer
from cineflow.models import MEDIA_KINDS, MOVIE, TV

from .coordinator import SessionCoordinator
from .keyboards import NOOP_CALLBACK, parse_page, parse_select
from .messages import MessageFactory
from .scheduler import DeletionScheduler

LOGGER = logging.getLogger(__name__)

BOT_COMMANDS: List[Tuple[str, str]] = [
    ("start", "Start the bot"),
    ("movie", "Search a movie (e.g., /movie RRR)"),
    ("tv", "Search a TV show (e.g., /tv Friends)"),
    ("id", "Search by TMDB ID (e.g., /id movie 12345)"),
    ("help", "How to use the bot"),
]


class TelegramMediaController:
    """Bridges Telegram updates to the search coordinator."""

    def __init__(
        self,
        coordinator: SessionCoordinator,
        messages: MessageFactory,
        scheduler: DeletionScheduler,
        health_server: Optional[HealthServer] = None,
    ) -> None:
        self._coordinator = coordinator
        self._messages = messages
        self._scheduler = scheduler
        self._health_server = health_server

    def register(self, application: Application) -> None:
        application.add_handler(CommandHandler("start", self.handle_start))
        application.add_handler(CommandHandler("help", self.handle_help))
        application.add_handler(CommandHandler(MOVIE, self.handle_movie))
        application.add_handler(CommandHandler(TV, self.handle_tv))
        application.add_handler(CommandHandler("id", self.handle_id))
        application.add_handler(CallbackQueryHandler(self.handle_callback))
        application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_text))
        application.add_error_handler(self.handle_error)
        application.post_init = self._chain_lifecycle_callback(application.post_init, self._on_startup)
        application.post_shutdown = self._chain_lifecycle_callback(application.post_shutdown, self._on_shutdown)

    async def handle_start(self, update: Update, _: ContextTypes.DEFAULT_TYPE) -> None:
        await self._reply(update, self._messages.welcome())

    async def handle_help(self, update: Update, _: ContextTypes.DEFAULT_TYPE) -> None:
        await self._reply(update, self._messages.help_text(), markdown=True)

    async def handle_movie(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._handle_title_command(update, context, MOVIE)

    async def handle_tv(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        await self._handle_title_command(update, context, TV)

    async def handle_id(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        ids = self._identities(update)
        if ids is None:
            return
        parsed = self.parse_id_args(context.args or [])
        if parsed is None:
            await self._reply(update, self._messages.usage("id"))
            return
        kind, tmdb_id = parsed
        user_id, chat_id = ids
        await self._coordinator.lookup_id(context.bot, user_id, chat_id, kind, tmdb_id)

    async def handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message or not update.message.text:
            return
        ids = self._identities(update)
        if ids is None:
            LOGGER.debug("Skipping message without user or chat.")
            return
        user_id, chat_id = ids
        await self._coordinator.start_search(context.bot, user_id, chat_id, update.message.text)

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if not query or not query.data:
            return

        data = query.data
        await query.answer()
        if data == NOOP_CALLBACK:
            return

        ids = self._identities(update)
        if ids is None:
            LOGGER.debug("Callback without user or chat.")
            return
        user_id, chat_id = ids

        selection = parse_select(data)
        if selection is not None:
            kind, tmdb_id = selection
            await self._coordinator.select_item(context.bot, user_id, chat_id, kind, tmdb_id)
            return

        page = parse_page(data)
        if page is not None:
            message_id = query.message.message_id if query.message else None
            await self._coordinator.change_page(context.bot, user_id, chat_id, message_id, page)
            return

        LOGGER.debug("Ignoring unknown callback payload: %s", data)

    async def handle_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        LOGGER.error("Unhandled exception while processing update %s", update, exc_info=context.error)

    @staticmethod
    def parse_id_args(args: List[str]) -> Optional[Tuple[str, int]]:
        if len(args) != 2:
            return None
        kind, raw_id = args[0].lower(), args[1]
        if kind not in MEDIA_KINDS or not raw_id.isdigit():
            return None
        return kind, int(raw_id)

    async def _handle_title_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE, kind: str) -> None:
        ids = self._identities(update)
        if ids is None:
            return
        query = " ".join(context.args or []).strip()
        if not query:
            await self._reply(update, self._messages.usage(kind))
            return
        user_id, chat_id = ids
        await self._coordinator.lookup_title(context.bot, user_id, chat_id, kind, query)

    async def _on_startup(self, application: Application) -> None:
        try:
            await application.bot.set_my_commands([BotCommand(name, description) for name, description in BOT_COMMANDS])
        except TelegramError as exc:
            LOGGER.warning("Could not register bot commands: %s", exc)
        if self._health_server is not None:
            await self._health_server.start()

    async def _on_shutdown(self, _: Application) -> None:
        await self._scheduler.shutdown()
        if self._health_server is not None:
            await self._health_server.stop()

    async def _reply(self, update: Update, text: str, markdown: bool = False) -> None:
        message = update.message
        if not message and update.callback_query:
            message = update.callback_query.message
        if not message:
            return
        await message.reply_text(text, parse_mode=ParseMode.MARKDOWN if markdown else None)

    @staticmethod
    def _identities(update: Update) -> Optional[Tuple[int, int]]:
        user = update.effective_user
        chat = update.effective_chat
        if not user or not chat:
            return None
        return user.id, chat.id

    @staticmethod
    def _chain_lifecycle_callback(
        existing: Optional[Callable[[Application], Awaitable[None]]],
        new_callback: Callable[[Application], Awaitable[None]],
    ) -> Callable[[Application], Awaitable[None]]:
        if existing is None:
            return new_callback

        async def combined(application: Application) -> None:
            await existing(application)
            await new_callback(application)

        return combined
