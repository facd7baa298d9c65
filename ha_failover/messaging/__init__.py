"""HA Failover Messaging System.

User-facing notices travel as pydantic message models over a MessageBus and
are presented by the RichConsoleRenderer.

Example:
    >>> from ha_failover.messaging import emit_warning
    >>> emit_warning("Quota hit on openai/gpt-4o")
"""

from .bus import (
    MessageBus,
    emit,
    emit_debug,
    emit_error,
    emit_info,
    emit_success,
    emit_warning,
    get_message_bus,
    reset_message_bus,
)
from .messages import (
    AnyMessage,
    BaseMessage,
    MessageCategory,
    MessageLevel,
    StatusPanelMessage,
    TextMessage,
    coerce_level,
)
from .rich_renderer import DEFAULT_STYLES, RichConsoleRenderer

__all__ = [
    # Message bus
    "MessageBus",
    "get_message_bus",
    "reset_message_bus",
    # Emit functions
    "emit",
    "emit_info",
    "emit_success",
    "emit_warning",
    "emit_error",
    "emit_debug",
    # Message types
    "AnyMessage",
    "BaseMessage",
    "MessageCategory",
    "MessageLevel",
    "StatusPanelMessage",
    "TextMessage",
    "coerce_level",
    # Renderer
    "RichConsoleRenderer",
    "DEFAULT_STYLES",
]
