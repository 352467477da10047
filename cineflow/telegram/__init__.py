"""
Telegram bot components for cineflow.
"""

from .controller import TelegramMediaController
from .coordinator import SessionCoordinator
from .gate import MembershipGate
from .keyboards import KeyboardBuilder
from .messages import MessageFactory
from .ratelimit import RateLimiter, RateState
from .scheduler import DeletionScheduler, PendingDeletion
from .sessions import SearchSession, SessionStore

__all__ = [
    "TelegramMediaController",
    "SessionCoordinator",
    "MembershipGate",
    "KeyboardBuilder",
    "MessageFactory",
    "RateLimiter",
    "RateState",
    "DeletionScheduler",
    "PendingDeletion",
    "SearchSession",
    "SessionStore",
]
