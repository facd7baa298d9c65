"""Host agent runtime interface.

The failover engine never drives requests itself; it reacts to turn
lifecycle events from a host agent loop and asks the host to switch models
and resend messages. Hosts implement HostAPI (sync or async methods are both
accepted) or subclass BaseHost, which routes user notices onto the message
bus.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence, runtime_checkable

from ha_failover.messaging import MessageCategory, coerce_level, get_message_bus
from ha_failover.messaging.messages import TextMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelDescriptor:
    """A concrete model the host can serve a turn with."""

    provider: str
    id: str
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def endpoint_id(self) -> str:
        return f"{self.provider}/{self.id}"


@dataclass
class TurnEvent:
    """Payload of a turn_start / turn_end notification."""

    role: str = "assistant"
    content: Any = None
    error_text: Optional[str] = None
    stop_reason: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.stop_reason == "error" or bool(self.error_text)


@runtime_checkable
class HostAPI(Protocol):
    """Operations the engine consumes from the host runtime."""

    def current_model(self) -> Optional[ModelDescriptor]:
        """The model serving the current turn."""
        ...

    def last_user_message(self) -> Any:
        """Content of the most recent user message on the active branch."""
        ...

    def switch_active_model(self, model: ModelDescriptor) -> Any:
        """Make model active. Falsy result means the switch was refused."""
        ...

    def resend_last_message(self, content: Any, delivery_mode: str) -> Any:
        """Fire-and-forget redispatch that starts a new turn."""
        ...

    def list_available_models(self, provider_id: str) -> Sequence[ModelDescriptor]:
        ...

    def get_credential_for_model(self, model: ModelDescriptor) -> Any:
        """Opaque key usable for model, or None."""
        ...

    def notify_user(self, text: str, severity: str = "info") -> Any:
        ...


class BaseHost:
    """Convenience base for hosts; notices go to the message bus."""

    def current_model(self) -> Optional[ModelDescriptor]:
        return None

    def last_user_message(self) -> Any:
        return None

    def switch_active_model(self, model: ModelDescriptor) -> Any:
        raise NotImplementedError

    def resend_last_message(self, content: Any, delivery_mode: str) -> Any:
        raise NotImplementedError

    def list_available_models(self, provider_id: str) -> Sequence[ModelDescriptor]:
        return []

    def get_credential_for_model(self, model: ModelDescriptor) -> Any:
        return None

    def notify_user(self, text: str, severity: str = "info") -> None:
        get_message_bus().emit(
            TextMessage(
                level=coerce_level(severity),
                text=text,
                category=MessageCategory.FAILOVER,
            )
        )


async def maybe_await(result: Any) -> Any:
    """Await result if a host method handed back a coroutine."""
    if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
        return await result
    return result
