"""Retry Coordinator - resend the last user message once per failover episode.

Two guards keep retries from looping:

- only one retry is in flight at a time (the episode lock), and
- the same message content is not retried twice in a row; the remembered
  fingerprint is dropped on the next ordinary turn start.

The lock expires lock_seconds after the resend because the host gives no
cheap signal for "the retried turn has finished". The expiry is a monotonic
deadline checked on every read of is_retrying, so the lock also lapses when
the event loop that ran the episode is gone; a loop timer only releases it
eagerly. Each episode takes a fresh generation number and a timer only
releases the generation it was armed for, so a late timer can never unlock a
newer episode.
"""

import asyncio
import hashlib
import json
import logging
import math
import time
from typing import Any, Callable, Optional

from ha_failover.host import maybe_await

logger = logging.getLogger(__name__)

DEFAULT_LOCK_SECONDS = 5.0
DEFAULT_RETRY_DELAY_SECONDS = 0.5

Dispatch = Callable[[Any], Any]


def fingerprint(content: Any) -> str:
    """Stable digest of message content (strings as-is, structures as sorted JSON)."""
    if isinstance(content, str):
        raw = content
    else:
        raw = json.dumps(content, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class RetryCoordinator:
    """Owns the retry episode state for one orchestrator."""

    def __init__(
        self,
        lock_seconds: float = DEFAULT_LOCK_SECONDS,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.lock_seconds = lock_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self.last_retry_fingerprint: Optional[str] = None
        self._monotonic = monotonic
        self._generation = 0
        # math.inf while a resend is being dispatched, None when unlocked
        self._locked_until: Optional[float] = None
        self._lock_timer: Optional[asyncio.TimerHandle] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_retrying(self) -> bool:
        if self._locked_until is None:
            return False
        if self._monotonic() >= self._locked_until:
            logger.debug("Retry lock for episode %d expired", self._generation)
            self.release(self._generation)
            return False
        return True

    def should_suppress(self, content: Any) -> bool:
        """True when a retry of content would be refused right now."""
        if self.is_retrying:
            logger.debug("Retry already in flight, skipping")
            return True
        if fingerprint(content) == self.last_retry_fingerprint:
            logger.info("Already retried this message, skipping")
            return True
        return False

    async def attempt_retry(self, content: Any, dispatch: Dispatch) -> bool:
        """Resend content through dispatch unless a guard suppresses it.

        Returns True when dispatch was invoked.
        """
        if self.should_suppress(content):
            return False

        digest = fingerprint(content)

        generation = self._acquire(digest)

        try:
            if self.retry_delay_seconds > 0:
                await asyncio.sleep(self.retry_delay_seconds)
            logger.info("Retrying last message...")
            await maybe_await(dispatch(content))
            return True
        finally:
            self._arm_release(generation)

    def on_turn_start(self) -> None:
        """An ordinary turn began: forget the last retried message."""
        if self.last_retry_fingerprint and not self.is_retrying:
            self.last_retry_fingerprint = None
            logger.debug("Cleared retry fingerprint on new turn")

    def release(self, generation: Optional[int] = None) -> bool:
        """Release the lock if generation is still the current episode."""
        if generation is not None and generation != self._generation:
            logger.debug(
                "Ignoring stale lock release for episode %d (current %d)",
                generation,
                self._generation,
            )
            return False
        self._locked_until = None
        if self._lock_timer is not None:
            self._lock_timer.cancel()
            self._lock_timer = None
        return True

    def reset(self) -> None:
        self.release()
        self.last_retry_fingerprint = None

    def _acquire(self, digest: str) -> int:
        if self._lock_timer is not None:
            self._lock_timer.cancel()
            self._lock_timer = None
        self._generation += 1
        self._locked_until = math.inf
        self.last_retry_fingerprint = digest
        return self._generation

    def _arm_release(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._locked_until = self._monotonic() + self.lock_seconds
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._lock_timer = loop.call_later(
            self.lock_seconds, self.release, generation
        )
