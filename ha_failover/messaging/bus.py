"""Message bus connecting the failover engine to whatever renders notices.

Messages emitted before a renderer is attached are buffered so nothing is
lost during startup; once a renderer is active, messages are delivered to
every subscriber synchronously.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

from .messages import AnyMessage, MessageCategory, MessageLevel, TextMessage

logger = logging.getLogger(__name__)

Subscriber = Callable[[AnyMessage], None]

MAX_BUFFERED_MESSAGES = 500


class MessageBus:
    """Fan-out bus for structured messages."""

    def __init__(self, max_buffer: int = MAX_BUFFERED_MESSAGES) -> None:
        self._lock = threading.Lock()
        self._buffer: Deque[AnyMessage] = deque(maxlen=max_buffer)
        self._subscribers: List[Subscriber] = []
        self._renderer_active = False

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def mark_renderer_active(self) -> None:
        self._renderer_active = True

    def mark_renderer_inactive(self) -> None:
        self._renderer_active = False

    @property
    def has_active_renderer(self) -> bool:
        return self._renderer_active

    def emit(self, message: AnyMessage) -> None:
        """Deliver a message to subscribers, or buffer it if nobody is rendering."""
        with self._lock:
            subscribers = list(self._subscribers)
            if not self._renderer_active or not subscribers:
                self._buffer.append(message)
                return

        for subscriber in subscribers:
            try:
                subscriber(message)
            except Exception as e:
                logger.error(f"Message subscriber failed: {e}")

    def get_buffered_messages(self) -> List[AnyMessage]:
        with self._lock:
            return list(self._buffer)

    def clear_buffer(self) -> None:
        with self._lock:
            self._buffer.clear()


_bus: Optional[MessageBus] = None
_bus_lock = threading.Lock()


def get_message_bus() -> MessageBus:
    """Get the process-wide MessageBus, creating it on first use."""
    global _bus
    with _bus_lock:
        if _bus is None:
            _bus = MessageBus()
        return _bus


def reset_message_bus() -> None:
    """Drop the global bus (used by tests)."""
    global _bus
    with _bus_lock:
        _bus = None


# =============================================================================
# Convenience emitters
# =============================================================================


def emit(
    text: str,
    level: MessageLevel = MessageLevel.INFO,
    category: MessageCategory = MessageCategory.SYSTEM,
) -> None:
    get_message_bus().emit(TextMessage(level=level, text=text, category=category))


def emit_info(text: str, category: MessageCategory = MessageCategory.SYSTEM) -> None:
    emit(text, MessageLevel.INFO, category)


def emit_success(text: str, category: MessageCategory = MessageCategory.SYSTEM) -> None:
    emit(text, MessageLevel.SUCCESS, category)


def emit_warning(text: str, category: MessageCategory = MessageCategory.SYSTEM) -> None:
    emit(text, MessageLevel.WARNING, category)


def emit_error(text: str, category: MessageCategory = MessageCategory.SYSTEM) -> None:
    emit(text, MessageLevel.ERROR, category)


def emit_debug(text: str, category: MessageCategory = MessageCategory.SYSTEM) -> None:
    emit(text, MessageLevel.DEBUG, category)
