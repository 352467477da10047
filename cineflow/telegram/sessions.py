import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from cineflow.models import MediaResult

from .scheduler import DeletionScheduler

LOGGER = logging.getLogger(__name__)


@dataclass
class SearchSession:
    owner: int
    query: str
    sequence: int
    page: int = 1
    total_pages: int = 0
    results: List[MediaResult] = field(default_factory=list)
    chat_id: Optional[int] = None
    message_id: Optional[int] = None

    @property
    def rendered_message(self) -> Optional[Tuple[int, int]]:
        if self.chat_id is None or self.message_id is None:
            return None
        return self.chat_id, self.message_id


class SessionStore:
    """At most one live search session per user.

    Replacing a session cancels the old one's pending deletion before the new
    one goes in, so a stale timer can never eat a newer message.
    """

    def __init__(self, scheduler: DeletionScheduler) -> None:
        self._scheduler = scheduler
        self._sessions: Dict[int, SearchSession] = {}
        self._sequence = itertools.count(1)

    def begin(self, owner: int, query: str, page: int = 1) -> Tuple[SearchSession, Optional[SearchSession]]:
        """Open a new session for ``owner``, superseding any previous one.

        Returns the new session and the one it replaced (if any), so the
        caller can take the replaced session's message off the screen.
        """

        session = SearchSession(owner=owner, query=query, sequence=next(self._sequence), page=page)
        previous = self._sessions.get(owner)
        if previous is not None:
            self._release(previous)
        self._sessions[owner] = session
        return session, previous

    def get(self, owner: int) -> Optional[SearchSession]:
        return self._sessions.get(owner)

    def is_current(self, session: SearchSession) -> bool:
        current = self._sessions.get(session.owner)
        return current is not None and current.sequence == session.sequence

    def attach(self, session: SearchSession, chat_id: int, message_id: int) -> bool:
        """Record the message now displaying ``session``.

        Returns ``False`` when the session was superseded in the meantime.
        """

        if not self.is_current(session):
            return False
        session.chat_id = chat_id
        session.message_id = message_id
        return True

    def discard(self, session: SearchSession) -> None:
        """Drop ``session`` if it is still the current one for its owner."""

        if self.is_current(session):
            self._sessions.pop(session.owner, None)
            self._release(session)

    def expire(self, owner: int, chat_id: int, message_id: int) -> None:
        """Forget the session whose message just got deleted by its timer."""

        session = self._sessions.get(owner)
        if session is not None and session.rendered_message == (chat_id, message_id):
            self._sessions.pop(owner, None)
            LOGGER.debug("Search session %d for user %s expired", session.sequence, owner)

    def _release(self, session: SearchSession) -> None:
        target = session.rendered_message
        if target is not None:
            self._scheduler.cancel(*target)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, owner: object) -> bool:
        return owner in self._sessions
