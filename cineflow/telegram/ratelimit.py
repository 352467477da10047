import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable

LOGGER = logging.getLogger(__name__)


@dataclass
class RateState:
    window_start: float
    count: int


class RateLimiter:
    """Per-user short-window admission control against rapid repeated taps.

    Best effort and in-memory only: it forgets everything on restart.
    """

    def __init__(
        self,
        window_seconds: float = 2.0,
        burst: int = 5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._burst = max(1, burst)
        self._clock = clock
        self._states: Dict[Hashable, RateState] = {}
        self._last_sweep = clock()

    def admit(self, identity: Hashable) -> bool:
        now = self._clock()
        state = self._states.get(identity)
        if state is None or now - state.window_start >= self._window:
            self._sweep(now)
            self._states[identity] = RateState(window_start=now, count=1)
            return True

        if state.count >= self._burst:
            LOGGER.debug("Rate limited %s (%d requests in window)", identity, state.count)
            return False
        state.count += 1
        return True

    def state_for(self, identity: Hashable) -> RateState | None:
        return self._states.get(identity)

    def __len__(self) -> int:
        return len(self._states)

    def _sweep(self, now: float) -> None:
        # An expired window admits exactly like a missing one, so it can go.
        if now - self._last_sweep < self._window:
            return
        self._last_sweep = now
        expired = [key for key, state in self._states.items() if now - state.window_start >= self._window]
        for key in expired:
            del self._states[key]
