"""Structured message models for HA failover notifications.

Pydantic models that decouple message content from presentation.
NO Rich markup or formatting should be embedded in any string fields.
Renderers decide how to display these structured messages.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

# =============================================================================
# Enums
# =============================================================================


class MessageLevel(str, Enum):
    """Severity level for text messages."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class MessageCategory(str, Enum):
    """Category of message for routing and rendering decisions."""

    SYSTEM = "system"
    FAILOVER = "failover"
    COMMAND = "command"


# =============================================================================
# Base Message
# =============================================================================


class BaseMessage(BaseModel):
    """Base class for all structured messages with auto-generated id and timestamp."""

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier for this message instance",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When this message was created (UTC)",
    )
    category: MessageCategory = Field(
        description="Category for routing and rendering decisions"
    )

    model_config = {"frozen": False, "extra": "forbid"}


# =============================================================================
# Text Messages
# =============================================================================


class TextMessage(BaseMessage):
    """Simple text message with a severity level. Text must be plain, no markup!"""

    category: MessageCategory = MessageCategory.SYSTEM
    level: MessageLevel = Field(description="Severity level of this message")
    text: str = Field(description="Plain text content - NO Rich markup allowed")


# =============================================================================
# Status Messages
# =============================================================================


class StatusPanelMessage(BaseMessage):
    """A status panel with key-value fields for structured status info."""

    category: MessageCategory = MessageCategory.COMMAND
    title: str = Field(description="Title for the status panel")
    fields: Dict[str, str] = Field(
        default_factory=dict,
        description="Key-value pairs to display",
    )


AnyMessage = Union[TextMessage, StatusPanelMessage]
"""Union of all message types for type checking."""


def coerce_level(severity: Optional[str]) -> MessageLevel:
    """Map a free-form severity string onto a MessageLevel (INFO when unknown)."""
    if isinstance(severity, MessageLevel):
        return severity
    try:
        return MessageLevel(str(severity or "info").lower())
    except ValueError:
        return MessageLevel.INFO


__all__ = [
    "MessageLevel",
    "MessageCategory",
    "BaseMessage",
    "TextMessage",
    "StatusPanelMessage",
    "AnyMessage",
    "coerce_level",
]
