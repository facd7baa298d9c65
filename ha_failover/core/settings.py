"""Engine tunables shared by the orchestrator and the ha.cfg loader."""

from dataclasses import dataclass

from .retry_coordinator import DEFAULT_LOCK_SECONDS, DEFAULT_RETRY_DELAY_SECONDS

CAPACITY_SCOPE_CREDENTIAL = "credential"
CAPACITY_SCOPE_PROVIDER = "provider"
CAPACITY_SCOPES = (CAPACITY_SCOPE_CREDENTIAL, CAPACITY_SCOPE_PROVIDER)

DEFAULT_DELIVERY_MODE = "steer"


@dataclass(frozen=True)
class EngineSettings:
    retry_lock_seconds: float = DEFAULT_LOCK_SECONDS
    retry_delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    retry_delivery_mode: str = DEFAULT_DELIVERY_MODE
    # "credential": capacity errors cool the active credential down, like quota.
    # "provider": capacity errors cool the endpoint down and skip account rotation.
    capacity_cooldown_scope: str = CAPACITY_SCOPE_CREDENTIAL
