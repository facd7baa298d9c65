"""Data model for the failover engine.

Durable configuration (groups, cooldown defaults, stored credentials) is
described with pydantic models so ha.json round-trips verbatim: camelCase keys
on disk, unknown keys preserved, credential blobs left opaque and in their
original order.

Runtime state (cooldowns, active selection) lives in plain dataclasses and is
never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

DEFAULT_COOLDOWN_MS = 60 * 60 * 1000
DEFAULT_CREDENTIAL_NAME = "primary"


class ErrorCategory(str, Enum):
    """Outcome of classifying a failed turn."""

    NONE = "none"
    QUOTA = "quota"
    CAPACITY = "capacity"


# =============================================================================
# Durable configuration (ha.json)
# =============================================================================


class GroupEntry(BaseModel):
    """One endpoint in a failover group: "provider" or "provider/model"."""

    id: str = Field(description="Endpoint id, provider or provider/model")
    cooldown_ms: Optional[int] = Field(
        default=None,
        alias="cooldownMs",
        description="Per-entry cooldown override in milliseconds",
    )

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def provider(self) -> str:
        return parse_entry_id(self.id)[0]

    @property
    def model_id(self) -> Optional[str]:
        return parse_entry_id(self.id)[1]


class Group(BaseModel):
    """Ordered priority list of endpoints. Order is rotation priority."""

    name: str
    entries: List[GroupEntry] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "allow"}


class HaConfig(BaseModel):
    """Contents of ha.json."""

    groups: Dict[str, Group] = Field(default_factory=dict)
    default_group: Optional[str] = Field(default=None, alias="defaultGroup")
    default_cooldown_ms: Optional[int] = Field(
        default=None, alias="defaultCooldownMs"
    )
    # provider id -> credential name -> opaque blob
    credentials: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    model_config = {"populate_by_name": True, "extra": "allow"}

    @property
    def effective_cooldown_ms(self) -> int:
        if self.default_cooldown_ms is None:
            return DEFAULT_COOLDOWN_MS
        return self.default_cooldown_ms

    def get_group(self, name: Optional[str]) -> Optional[Group]:
        if not name:
            return None
        return self.groups.get(name)

    def credentials_for(self, provider_id: str) -> Dict[str, Any]:
        return self.credentials.get(provider_id) or {}

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Runtime state
# =============================================================================


@dataclass
class ExhaustedEntry:
    """A key inside its cooldown window."""

    key: str
    exhausted_at: float  # epoch milliseconds
    cooldown_ms: float

    def remaining_ms(self, now_ms: float) -> float:
        return max(0.0, self.cooldown_ms - (now_ms - self.exhausted_at))


@dataclass
class ActiveSelection:
    """Which group is consulted and which credential each provider uses."""

    active_group: Optional[str] = None
    active_credential_by_provider: Dict[str, str] = field(default_factory=dict)

    def credential_for(self, provider_id: str) -> str:
        return self.active_credential_by_provider.get(
            provider_id, DEFAULT_CREDENTIAL_NAME
        )


# =============================================================================
# Key helpers
# =============================================================================


def parse_entry_id(entry_id: str) -> Tuple[str, Optional[str]]:
    """Split an endpoint id into (provider, model).

    Only the first slash separates provider from model, so model ids that
    carry their own namespace ("openrouter/meta-llama/llama-3") survive.
    """
    provider, sep, model_id = entry_id.partition("/")
    if not sep or not model_id:
        return provider, None
    return provider, model_id


def credential_key(provider_id: str, credential_name: str) -> str:
    return f"{provider_id}:{credential_name}"


def endpoint_key(provider_id: str, model_id: Optional[str] = None) -> str:
    if model_id:
        return f"{provider_id}/{model_id}"
    return provider_id
