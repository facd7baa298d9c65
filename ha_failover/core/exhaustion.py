"""Exhaustion Registry - in-memory cooldown tracking.

Keys are either credential keys ("provider:name") or endpoint keys
("provider" / "provider/model"). A fresh failure resets the cooldown clock
instead of extending it. Expired entries are pruned lazily on lookup.
Nothing here is persisted; a restart clears every cooldown.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from .models import ExhaustedEntry

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _now_ms() -> float:
    """Current time in milliseconds."""
    return time.time() * 1000


class ExhaustionRegistry:
    """Tracks which keys are cooling down."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock: Clock = clock or _now_ms
        self._entries: Dict[str, ExhaustedEntry] = {}

    def now(self) -> float:
        return self._clock()

    def mark_exhausted(self, key: str, cooldown_ms: float) -> ExhaustedEntry:
        """Record key as exhausted from now, overwriting any prior entry."""
        entry = ExhaustedEntry(key=key, exhausted_at=self._clock(), cooldown_ms=cooldown_ms)
        self._entries[key] = entry
        logger.info("Marked %s exhausted for %.0fs", key, max(cooldown_ms, 0) / 1000)
        return entry

    def is_exhausted(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() - entry.exhausted_at >= entry.cooldown_ms:
            del self._entries[key]
            logger.debug("Cooldown expired for %s", key)
            return False
        return True

    def remaining_ms(self, key: str) -> float:
        """Milliseconds left on key's cooldown, 0 when not exhausted."""
        if not self.is_exhausted(key):
            return 0.0
        return self._entries[key].remaining_ms(self._clock())

    def clear(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear_all(self) -> None:
        if self._entries:
            logger.info("Cleared %d cooldown(s)", len(self._entries))
        self._entries.clear()

    def snapshot(self) -> List[ExhaustedEntry]:
        """Currently active entries, pruning expired ones on the way."""
        return [
            self._entries[key]
            for key in list(self._entries)
            if self.is_exhausted(key)
        ]

    def __len__(self) -> int:
        return len(self.snapshot())

    def __contains__(self, key: str) -> bool:
        return self.is_exhausted(key)
