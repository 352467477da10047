from __future__ import annotations

"""Tests for update routing in the Telegram controller."""

import unittest
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

from cineflow.telegram.controller import BOT_COMMANDS, TelegramMediaController
from cineflow.telegram.messages import MessageFactory
from fakes import FakeBot


def _update(
    text: Optional[str] = None,
    data: Optional[str] = None,
    user_id: int = 7,
    chat_id: int = 70,
    tapped_message_id: Optional[int] = 555,
) -> SimpleNamespace:
    message = SimpleNamespace(text=text, reply_text=AsyncMock()) if text is not None else None
    callback_query = None
    if data is not None:
        tapped = SimpleNamespace(message_id=tapped_message_id) if tapped_message_id is not None else None
        callback_query = SimpleNamespace(data=data, answer=AsyncMock(), message=tapped)
    return SimpleNamespace(
        message=message,
        callback_query=callback_query,
        effective_user=SimpleNamespace(id=user_id),
        effective_chat=SimpleNamespace(id=chat_id),
    )


def _context(args: Optional[List[str]] = None) -> SimpleNamespace:
    return SimpleNamespace(args=args, bot=FakeBot(), error=None)


class ControllerRoutingTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.coordinator = MagicMock()
        for name in ("start_search", "change_page", "select_item", "lookup_title", "lookup_id"):
            setattr(self.coordinator, name, AsyncMock())
        self.messages = MessageFactory()
        self.scheduler = MagicMock()
        self.scheduler.shutdown = AsyncMock()
        self.controller = TelegramMediaController(self.coordinator, self.messages, self.scheduler)

    async def test_plain_text_starts_search(self) -> None:
        context = _context()
        await self.controller.handle_text(_update(text="batman"), context)
        self.coordinator.start_search.assert_awaited_once_with(context.bot, 7, 70, "batman")

    async def test_start_replies_with_welcome(self) -> None:
        update = _update(text="/start")
        await self.controller.handle_start(update, _context())
        update.message.reply_text.assert_awaited_once()
        self.assertEqual(update.message.reply_text.await_args[0][0], self.messages.welcome())

    async def test_movie_command_joins_arguments(self) -> None:
        context = _context(["The", "Dark", "Knight"])
        await self.controller.handle_movie(_update(text="/movie The Dark Knight"), context)
        self.coordinator.lookup_title.assert_awaited_once_with(context.bot, 7, 70, "movie", "The Dark Knight")

    async def test_tv_command_without_arguments_shows_usage(self) -> None:
        update = _update(text="/tv")
        await self.controller.handle_tv(update, _context([]))
        self.coordinator.lookup_title.assert_not_awaited()
        self.assertEqual(update.message.reply_text.await_args[0][0], self.messages.usage("tv"))

    async def test_id_command_routes_parsed_arguments(self) -> None:
        context = _context(["TV", "1399"])
        await self.controller.handle_id(_update(text="/id TV 1399"), context)
        self.coordinator.lookup_id.assert_awaited_once_with(context.bot, 7, 70, "tv", 1399)

    async def test_id_command_rejects_bad_arguments(self) -> None:
        update = _update(text="/id movie abc")
        await self.controller.handle_id(update, _context(["movie", "abc"]))
        self.coordinator.lookup_id.assert_not_awaited()
        self.assertEqual(update.message.reply_text.await_args[0][0], self.messages.usage("id"))

    async def test_select_callback_routes_to_detail(self) -> None:
        update = _update(data="select_tv_1399")
        context = _context()
        await self.controller.handle_callback(update, context)
        update.callback_query.answer.assert_awaited_once()
        self.coordinator.select_item.assert_awaited_once_with(context.bot, 7, 70, "tv", 1399)
        self.coordinator.change_page.assert_not_awaited()

    async def test_page_callbacks_route_to_change_page(self) -> None:
        context = _context()
        await self.controller.handle_callback(_update(data="search_next_3"), context)
        await self.controller.handle_callback(_update(data="search_prev_2"), context)
        calls = [call.args[1:] for call in self.coordinator.change_page.await_args_list]
        self.assertEqual(calls, [(7, 70, 555, 3), (7, 70, 555, 2)])

    async def test_page_callback_without_message_passes_no_message_id(self) -> None:
        context = _context()
        await self.controller.handle_callback(_update(data="search_next_2", tapped_message_id=None), context)
        self.coordinator.change_page.assert_awaited_once_with(context.bot, 7, 70, None, 2)

    async def test_noop_and_unknown_callbacks_are_only_answered(self) -> None:
        for data in ("noop", "something_else"):
            update = _update(data=data)
            await self.controller.handle_callback(update, _context())
            update.callback_query.answer.assert_awaited_once()
        self.coordinator.select_item.assert_not_awaited()
        self.coordinator.change_page.assert_not_awaited()

    async def test_startup_registers_commands_and_shutdown_stops_scheduler(self) -> None:
        application = SimpleNamespace(bot=SimpleNamespace(set_my_commands=AsyncMock()))
        await self.controller._on_startup(application)
        commands = application.bot.set_my_commands.await_args[0][0]
        self.assertEqual([command.command for command in commands], [name for name, _ in BOT_COMMANDS])
        await self.controller._on_shutdown(application)
        self.scheduler.shutdown.assert_awaited_once()

    async def test_lifecycle_callbacks_chain_in_order(self) -> None:
        calls: List[str] = []

        async def first(_: object) -> None:
            calls.append("first")

        async def second(_: object) -> None:
            calls.append("second")

        combined = TelegramMediaController._chain_lifecycle_callback(first, second)
        await combined(object())
        self.assertEqual(calls, ["first", "second"])
        self.assertIs(TelegramMediaController._chain_lifecycle_callback(None, second), second)


class ParseIdArgsTests(unittest.TestCase):
    def test_valid_arguments(self) -> None:
        self.assertEqual(TelegramMediaController.parse_id_args(["movie", "27205"]), ("movie", 27205))
        self.assertEqual(TelegramMediaController.parse_id_args(["Tv", "1399"]), ("tv", 1399))

    def test_invalid_arguments(self) -> None:
        for args in ([], ["movie"], ["person", "1"], ["movie", "-1"], ["movie", "1", "2"]):
            self.assertIsNone(TelegramMediaController.parse_id_args(args), args)


if __name__ == "__main__":
    unittest.main()
