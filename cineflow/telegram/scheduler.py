import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from telegram.error import TelegramError

LOGGER = logging.getLogger(__name__)

MessageKey = Tuple[int, int]


@dataclass
class PendingDeletion:
    chat_id: int
    message_id: int
    deadline: float
    task: "asyncio.Task[None]"

    @property
    def target(self) -> MessageKey:
        return self.chat_id, self.message_id


class DeletionScheduler:
    """Deferred, cancellable message deletion keyed by (chat, message).

    Scheduling a message that already has a pending deletion replaces the old
    timer. Cancelling twice, or after the timer fired, is a no-op.
    """

    def __init__(self) -> None:
        self._pending: Dict[MessageKey, PendingDeletion] = {}

    def schedule(
        self,
        bot: Any,
        chat_id: int,
        message_id: int,
        ttl: float,
        on_expire: Optional[Callable[[], None]] = None,
    ) -> PendingDeletion:
        key = (chat_id, message_id)
        self.cancel(chat_id, message_id)
        task = asyncio.create_task(
            self._fire(bot, key, ttl, on_expire),
            name=f"delete-{chat_id}-{message_id}",
        )
        entry = PendingDeletion(chat_id=chat_id, message_id=message_id, deadline=time.monotonic() + ttl, task=task)
        self._pending[key] = entry
        return entry

    def cancel(self, chat_id: int, message_id: int) -> bool:
        entry = self._pending.pop((chat_id, message_id), None)
        if entry is None:
            return False
        if not entry.task.done():
            entry.task.cancel()
        return True

    def get(self, chat_id: int, message_id: int) -> Optional[PendingDeletion]:
        return self._pending.get((chat_id, message_id))

    def is_pending(self, chat_id: int, message_id: int) -> bool:
        return (chat_id, message_id) in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    async def delete_now(self, bot: Any, chat_id: int, message_id: int) -> bool:
        """Cancel any timer for the message and delete it right away."""

        self.cancel(chat_id, message_id)
        return await self._delete(bot, chat_id, message_id)

    async def shutdown(self) -> None:
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            entry.task.cancel()
        if entries:
            await asyncio.gather(*(entry.task for entry in entries), return_exceptions=True)

    async def _fire(
        self,
        bot: Any,
        key: MessageKey,
        ttl: float,
        on_expire: Optional[Callable[[], None]],
    ) -> None:
        await asyncio.sleep(ttl)
        entry = self._pending.get(key)
        if entry is None or entry.task is not asyncio.current_task():
            return
        del self._pending[key]
        await self._delete(bot, *key)
        if on_expire is not None:
            try:
                on_expire()
            except Exception:  # keep the timer task from dying loudly
                LOGGER.exception("Expiry callback failed for message %s in chat %s", key[1], key[0])

    @staticmethod
    async def _delete(bot: Any, chat_id: int, message_id: int) -> bool:
        try:
            await bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as exc:
            # Already gone or no permission: nothing to do about it.
            LOGGER.debug("Could not delete message %s in chat %s: %s", message_id, chat_id, exc)
            return False
        return True
