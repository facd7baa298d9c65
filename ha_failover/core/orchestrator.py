"""Failover Orchestrator - transparent failover for a host agent loop.

On every turn completion the orchestrator classifies the outcome and, for a
quota or capacity failure, runs one failover episode:

    IDLE -> CLASSIFYING -> CREDENTIAL_ROTATING -> RETRYING -> IDLE
                                |
                                v
                         ENDPOINT_ROTATING -> RETRYING -> IDLE
                                |
                                v
                            EXHAUSTED -> IDLE

1. Same-provider credential rotation is tried first (another account for
   the provider that just failed).
2. Failing that, the active group is scanned for the next usable endpoint;
   a candidate the host refuses to activate is skipped and the scan goes on.
3. On a successful switch the Retry Coordinator resends the last user
   message, at most once per episode.
4. If nothing is left, one user-visible notice is emitted and nothing is
   resent.

All state (cooldowns, active selection, retry episode) is owned by the
instance; collaborators (host, stores, clock) are injected. Nothing raised
inside an episode escapes handle_turn_end.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

from ha_failover.host import HostAPI, ModelDescriptor, TurnEvent, maybe_await

from .credential_rotation import credential_names, iter_credentials
from .credential_sync import detect_active_credentials, sync_auth_into_config
from .endpoint_rotation import EndpointCandidate, find_entry_index, iter_endpoints
from .error_classifier import ErrorClassifier
from .exhaustion import Clock, ExhaustionRegistry
from .models import (
    DEFAULT_CREDENTIAL_NAME,
    ActiveSelection,
    ErrorCategory,
    Group,
    GroupEntry,
    HaConfig,
    credential_key,
    endpoint_key,
)
from .retry_coordinator import RetryCoordinator
from .settings import CAPACITY_SCOPE_PROVIDER, EngineSettings

logger = logging.getLogger(__name__)


class ConfigStore(Protocol):
    def exists(self) -> bool:
        ...

    def load_config(self) -> Optional[HaConfig]:
        ...

    def save_config(self, cfg: HaConfig) -> bool:
        ...


class CredentialStore(Protocol):
    def load_all(self) -> Dict[str, Any]:
        ...

    def load_active_credential(self, provider_id: str) -> Optional[Any]:
        ...

    def save_active_credential(self, provider_id: str, blob: Any) -> bool:
        ...


class FailoverState(str, Enum):
    """Named states of one failover episode."""

    IDLE = "idle"
    CLASSIFYING = "classifying"
    CREDENTIAL_ROTATING = "credential_rotating"
    ENDPOINT_ROTATING = "endpoint_rotating"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"


@dataclass
class FailoverResult:
    """Outcome of handling one turn-end event."""

    triggered: bool = False
    success: bool = False
    category: ErrorCategory = ErrorCategory.NONE
    original_endpoint: Optional[str] = None
    failover_endpoint: Optional[str] = None
    credential: Optional[str] = None
    attempts: int = 0
    retried: bool = False
    error: Optional[str] = None
    states: List[FailoverState] = field(default_factory=list)


@dataclass
class _Episode:
    """Working data threaded through the state handlers."""

    event: TurnEvent
    result: FailoverResult
    model: Optional[ModelDescriptor] = None
    provider: Optional[str] = None
    group: Optional[Group] = None
    current_entry: Optional[GroupEntry] = None
    cooldown_ms: float = 0
    notice: str = ""


StateHandler = Callable[[_Episode], Awaitable[FailoverState]]


class FailoverOrchestrator:
    """Composes classification, cooldowns, rotation and retry."""

    def __init__(
        self,
        host: HostAPI,
        config_store: ConfigStore,
        credential_store: CredentialStore,
        settings: Optional[EngineSettings] = None,
        clock: Optional[Clock] = None,
        classifier: Optional[ErrorClassifier] = None,
    ):
        self.host = host
        self.config_store = config_store
        self.credential_store = credential_store
        self.settings = settings or EngineSettings()
        self.classifier = classifier or ErrorClassifier()
        self.registry = ExhaustionRegistry(clock)
        self.retry = RetryCoordinator(
            lock_seconds=self.settings.retry_lock_seconds,
            retry_delay_seconds=self.settings.retry_delay_seconds,
        )
        self.selection = ActiveSelection()
        self.config: Optional[HaConfig] = None
        self.state = FailoverState.IDLE

        self._handlers: Dict[FailoverState, StateHandler] = {
            FailoverState.CLASSIFYING: self._on_classifying,
            FailoverState.CREDENTIAL_ROTATING: self._on_credential_rotating,
            FailoverState.ENDPOINT_ROTATING: self._on_endpoint_rotating,
            FailoverState.RETRYING: self._on_retrying,
            FailoverState.EXHAUSTED: self._on_exhausted,
        }

    # =========================================================================
    # Configuration lifecycle
    # =========================================================================

    def load(self) -> Optional[HaConfig]:
        """Load ha.json, activate its default group and sync credentials."""
        try:
            loaded = self.config_store.load_config()
        except Exception as e:
            logger.error(f"Config store read failed: {e}")
            loaded = None

        if loaded is None:
            logger.info("No HA configuration found; failover inactive")
            return self.config

        self.config = loaded
        if loaded.default_group and loaded.default_group in loaded.groups:
            self.selection.active_group = loaded.default_group
            logger.info(f"Active group: {loaded.default_group}")

        self.sync_credentials()
        self.refresh_active_credentials()
        return self.config

    def save(self) -> bool:
        if self.config is None:
            return False
        try:
            return bool(self.config_store.save_config(self.config))
        except Exception as e:
            logger.error(f"Config store write failed: {e}")
            return False

    def sync_credentials(self) -> Dict[str, str]:
        """Import credentials from the auth file into ha.json."""
        if self.config is None:
            return {}
        try:
            auth = self.credential_store.load_all()
        except Exception as e:
            logger.error(f"Credential store read failed: {e}")
            return {}
        added = sync_auth_into_config(self.config, auth)
        if added:
            self.save()
        return added

    def refresh_active_credentials(self) -> Dict[str, str]:
        """Align the active credential map with what the auth file holds."""
        if self.config is None:
            return {}
        try:
            auth = self.credential_store.load_all()
        except Exception as e:
            logger.error(f"Credential store read failed: {e}")
            return {}
        detected = detect_active_credentials(self.config, auth)
        self.selection.active_credential_by_provider.update(detected)
        return detected

    # =========================================================================
    # User actions
    # =========================================================================

    @property
    def active_group(self) -> Optional[str]:
        return self.selection.active_group

    def switch_group(self, group_name: str) -> bool:
        """Make group_name active; all cooldowns are dropped."""
        if self.config is None or group_name not in self.config.groups:
            return False
        self.selection.active_group = group_name
        self.registry.clear_all()
        logger.info(f"Switched to HA group: {group_name}")
        return True

    def switch_credential(self, provider_id: str, credential_name: str) -> bool:
        """Copy a stored credential into the credential store and mark it active."""
        if self.config is None:
            return False
        blob = self.config.credentials_for(provider_id).get(credential_name)
        if blob is None:
            return False
        try:
            saved = self.credential_store.save_active_credential(provider_id, blob)
        except Exception as e:
            logger.error(f"Credential store write failed: {e}")
            saved = False
        if not saved:
            logger.warning(f"Could not activate {provider_id}:{credential_name}")
            return False
        self.selection.active_credential_by_provider[provider_id] = credential_name
        logger.info(f"Switched {provider_id} to credential \"{credential_name}\"")
        return True

    def current_group(self) -> Optional[Group]:
        if self.config is None:
            return None
        return self.config.get_group(self.selection.active_group)

    # =========================================================================
    # Host lifecycle hooks
    # =========================================================================

    async def handle_turn_start(self, event: Optional[TurnEvent] = None) -> None:
        self.retry.on_turn_start()

    async def handle_turn_end(self, event: TurnEvent) -> FailoverResult:
        """Entry point for turn completion. Never raises."""
        result = FailoverResult()
        if self.config is None or not self.selection.active_group:
            return result
        if self.retry.is_retrying:
            logger.debug("Retry in flight, ignoring turn end")
            return result
        if event.role != "assistant" or not event.has_error:
            return result

        episode = _Episode(event=event, result=result)
        try:
            await self._run(episode)
        except Exception as e:
            logger.exception("Failover episode failed")
            result.error = str(e)
        finally:
            self.state = FailoverState.IDLE
        return result

    async def _run(self, episode: _Episode) -> None:
        """Single dispatch loop over the named states."""
        self.state = FailoverState.CLASSIFYING
        while self.state is not FailoverState.IDLE:
            episode.result.states.append(self.state)
            handler = self._handlers[self.state]
            self.state = await handler(episode)

    # =========================================================================
    # State handlers
    # =========================================================================

    async def _on_classifying(self, ep: _Episode) -> FailoverState:
        ep.model = await maybe_await(self.host.current_model())
        ep.provider = ep.model.provider if ep.model else None
        ep.result.original_endpoint = ep.model.endpoint_id if ep.model else None

        category = self.classifier.classify(ep.event.error_text, ep.provider)
        ep.result.category = category
        if category is ErrorCategory.NONE:
            logger.info(
                f"Error detected but not failover-worthy: {ep.event.error_text}"
            )
            return FailoverState.IDLE

        logger.info(f"Failover error detected ({category.value}): {ep.event.error_text}")
        ep.result.triggered = True
        ep.group = self.current_group()
        ep.current_entry = self._entry_for(ep.group, ep.model)
        ep.cooldown_ms = self._cooldown_for(ep.current_entry)

        if ep.provider is None:
            return FailoverState.ENDPOINT_ROTATING
        if (
            category is ErrorCategory.CAPACITY
            and self.settings.capacity_cooldown_scope == CAPACITY_SCOPE_PROVIDER
        ):
            return FailoverState.ENDPOINT_ROTATING

        active = self.selection.credential_for(ep.provider)
        self.registry.mark_exhausted(credential_key(ep.provider, active), ep.cooldown_ms)
        return FailoverState.CREDENTIAL_ROTATING

    async def _on_credential_rotating(self, ep: _Episode) -> FailoverState:
        provider = ep.provider
        active = self.selection.credential_for(provider)
        stored = self.config.credentials_for(provider) if self.config else {}

        for name in iter_credentials(provider, stored, active, self.registry):
            ep.result.attempts += 1
            logger.info(f"Trying next credential \"{name}\" for {provider}")
            if not self.switch_credential(provider, name):
                continue
            ep.result.success = True
            ep.result.credential = name
            ep.result.failover_endpoint = ep.result.original_endpoint
            ep.notice = (
                f"⚠️ {self._kind(ep.result.category)} hit!\n"
                f"Switched {provider} to account \"{name}\"."
            )
            return FailoverState.RETRYING

        return FailoverState.ENDPOINT_ROTATING

    async def _on_endpoint_rotating(self, ep: _Episode) -> FailoverState:
        self._mark_current_endpoint(ep)

        current_id = ep.model.endpoint_id if ep.model else None
        candidates = iter_endpoints(ep.group, current_id, self.registry, self.host)
        try:
            async for candidate in candidates:
                ep.result.attempts += 1
                if await self._activate(candidate):
                    ep.result.success = True
                    ep.result.failover_endpoint = candidate.model.endpoint_id
                    ep.result.credential = self.selection.active_credential_by_provider.get(
                        candidate.model.provider
                    )
                    ep.notice = (
                        f"⚠️ {self._error_label(ep.result.category)} on "
                        f"{ep.result.original_endpoint or 'current'}!\n"
                        f"Switched to {candidate.model.endpoint_id}."
                    )
                    return FailoverState.RETRYING
        finally:
            await candidates.aclose()

        return FailoverState.EXHAUSTED

    async def _on_retrying(self, ep: _Episode) -> FailoverState:
        content = await maybe_await(self.host.last_user_message())
        if content is None:
            logger.info("No user message found to retry")
            await self._notify(ep.notice, "warning")
            return FailoverState.IDLE
        if self.retry.should_suppress(content):
            await self._notify(ep.notice, "warning")
            return FailoverState.IDLE

        await self._notify(f"{ep.notice} Retrying...", "warning")
        mode = self.settings.retry_delivery_mode
        try:
            ep.result.retried = await self.retry.attempt_retry(
                content, lambda c: self.host.resend_last_message(c, mode)
            )
        except Exception as e:
            logger.error(f"Failed to retry message: {e}")
            await self._notify("Failed to retry message. Please try manually.", "error")
        return FailoverState.IDLE

    async def _on_exhausted(self, ep: _Episode) -> FailoverState:
        ep.result.success = False
        await self._notify("⚠️ All providers in group exhausted. No failover available.", "error")
        return FailoverState.IDLE

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _activate(self, candidate: EndpointCandidate) -> bool:
        """Point credentials at the candidate's provider and ask the host to switch."""
        model = candidate.model
        stored = self.config.credentials_for(model.provider) if self.config else {}
        if DEFAULT_CREDENTIAL_NAME in credential_names(stored):
            if not self.switch_credential(model.provider, DEFAULT_CREDENTIAL_NAME):
                logger.warning(f"Could not load primary credential for {model.provider}")
                return False
        else:
            self.selection.active_credential_by_provider[model.provider] = (
                DEFAULT_CREDENTIAL_NAME
            )

        try:
            switched = await maybe_await(self.host.switch_active_model(model))
        except Exception as e:
            logger.warning(f"Host failed to switch to {model.endpoint_id}: {e}")
            switched = False
        if not switched:
            logger.warning(f"Host declined switch to {model.endpoint_id}, continuing")
            return False

        logger.info(f"Switched to {model.endpoint_id}")
        return True

    def _mark_current_endpoint(self, ep: _Episode) -> None:
        """Put the failing endpoint (and its group entry) into cooldown."""
        keys = []
        if ep.model is not None:
            keys.append(endpoint_key(ep.model.provider, ep.model.id))
        if ep.current_entry is not None and ep.current_entry.id not in keys:
            keys.append(ep.current_entry.id)
        for key in keys:
            self.registry.mark_exhausted(key, ep.cooldown_ms)

    def _entry_for(
        self, group: Optional[Group], model: Optional[ModelDescriptor]
    ) -> Optional[GroupEntry]:
        if group is None or model is None:
            return None
        index = find_entry_index(group.entries, model.endpoint_id)
        return group.entries[index] if index >= 0 else None

    def _cooldown_for(self, entry: Optional[GroupEntry]) -> float:
        if entry is not None and entry.cooldown_ms is not None:
            return entry.cooldown_ms
        if self.config is None:
            return 0
        return self.config.effective_cooldown_ms

    async def _notify(self, text: str, severity: str) -> None:
        try:
            await maybe_await(self.host.notify_user(text, severity))
        except Exception as e:
            logger.warning(f"notify_user failed: {e}")

    @staticmethod
    def _kind(category: ErrorCategory) -> str:
        return "Capacity" if category is ErrorCategory.CAPACITY else "Quota"

    @staticmethod
    def _error_label(category: ErrorCategory) -> str:
        return "Capacity exhausted" if category is ErrorCategory.CAPACITY else "Quota hit"
