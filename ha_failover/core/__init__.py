"""Failover decision engine.

This package provides:
- ErrorClassifier: table-driven quota/capacity classification
- ExhaustionRegistry: in-memory cooldown tracking
- Credential rotation: same-provider account failover
- Endpoint rotation: cross-provider failover within a group
- RetryCoordinator: one resend per failover episode
- FailoverOrchestrator: the state machine tying it all together
"""

from .credential_rotation import iter_credentials, next_credential
from .endpoint_rotation import EndpointCandidate, iter_endpoints, next_endpoint
from .error_classifier import ClassificationRule, ErrorClassifier, classify
from .exhaustion import ExhaustionRegistry
from .models import (
    DEFAULT_COOLDOWN_MS,
    ActiveSelection,
    ErrorCategory,
    ExhaustedEntry,
    Group,
    GroupEntry,
    HaConfig,
    parse_entry_id,
)
from .orchestrator import FailoverOrchestrator, FailoverResult, FailoverState
from .retry_coordinator import RetryCoordinator
from .settings import EngineSettings

__all__ = [
    "ActiveSelection",
    "ClassificationRule",
    "DEFAULT_COOLDOWN_MS",
    "EndpointCandidate",
    "EngineSettings",
    "ErrorCategory",
    "ErrorClassifier",
    "ExhaustedEntry",
    "ExhaustionRegistry",
    "FailoverOrchestrator",
    "FailoverResult",
    "FailoverState",
    "Group",
    "GroupEntry",
    "HaConfig",
    "RetryCoordinator",
    "classify",
    "iter_credentials",
    "iter_endpoints",
    "next_credential",
    "next_endpoint",
    "parse_entry_id",
]
