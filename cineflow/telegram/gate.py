import logging
from typing import Any, Iterable, List, Optional, Sequence

from telegram.constants import ChatMemberStatus
from telegram.error import TelegramError

from cineflow.config import GateTarget

LOGGER = logging.getLogger(__name__)

AUTHORIZED_STATUSES = (
    ChatMemberStatus.OWNER.value,
    ChatMemberStatus.ADMINISTRATOR.value,
    ChatMemberStatus.MEMBER.value,
)


class MembershipGate:
    """Lets a user in when they belong to any one of the configured chats."""

    def __init__(self, targets: Sequence[GateTarget], allowed_user_ids: Optional[Iterable[int]] = None) -> None:
        self._targets: List[GateTarget] = list(targets)
        self._allowed = frozenset(allowed_user_ids or ())

    @property
    def targets(self) -> List[GateTarget]:
        return list(self._targets)

    @property
    def enabled(self) -> bool:
        return bool(self._targets)

    async def authorize(self, bot: Any, user_id: int) -> bool:
        if user_id in self._allowed or not self._targets:
            return True

        for target in self._targets:
            if await self._is_member(bot, target, user_id):
                return True
        LOGGER.info("User %s is not a member of any gate chat", user_id)
        return False

    @staticmethod
    async def _is_member(bot: Any, target: GateTarget, user_id: int) -> bool:
        try:
            member = await bot.get_chat_member(chat_id=target.chat_id, user_id=user_id)
        except TelegramError as exc:
            LOGGER.warning("Membership lookup for user %s in %s failed: %s", user_id, target.chat_id, exc)
            return False

        return getattr(member, "status", None) in AUTHORIZED_STATUSES
