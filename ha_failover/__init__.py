import importlib.metadata

try:
    _detected_version = importlib.metadata.version("ha-failover")
    __version__ = _detected_version if _detected_version else "0.0.0-dev"
except Exception:
    # Source checkouts without installed metadata
    __version__ = "0.0.0-dev"

from ha_failover.core import (
    ErrorCategory,
    FailoverOrchestrator,
    FailoverResult,
    FailoverState,
    HaConfig,
)
from ha_failover.host import BaseHost, HostAPI, ModelDescriptor, TurnEvent

__all__ = [
    "__version__",
    # Engine
    "FailoverOrchestrator",
    "FailoverResult",
    "FailoverState",
    "ErrorCategory",
    "HaConfig",
    # Host interface
    "HostAPI",
    "BaseHost",
    "ModelDescriptor",
    "TurnEvent",
]
