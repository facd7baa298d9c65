"""Slash commands for inspecting and steering failover.

    /ha-init                      create ha.json from the providers in the auth file
    /ha-use <group>               switch the active group (clears cooldowns)
    /ha-status                    show group health, credentials and cooldowns
    /ha-sync                      import new credentials from the auth file
    /ha-switch <provider> <name>  activate a stored credential by hand
"""

import logging
import math
from typing import Callable, Dict, List, Optional, Tuple

from ha_failover.core.models import (
    DEFAULT_COOLDOWN_MS,
    Group,
    GroupEntry,
    HaConfig,
    parse_entry_id,
)
from ha_failover.core.orchestrator import FailoverOrchestrator
from ha_failover.messaging import (
    MessageCategory,
    StatusPanelMessage,
    emit_error,
    emit_info,
    emit_success,
    emit_warning,
    get_message_bus,
)

logger = logging.getLogger(__name__)

DEFAULT_GROUP_ID = "default"
FALLBACK_PROVIDERS = ("anthropic", "google-gemini-cli", "openai")
NOT_CONFIGURED = "HA not configured. Run /ha-init first."


class FailoverCommands:
    """Command handlers bound to one orchestrator."""

    def __init__(self, orchestrator: FailoverOrchestrator):
        self.orchestrator = orchestrator
        self._handlers: Dict[str, Callable[[List[str]], None]] = {
            "ha-init": self.init,
            "ha-use": self.use,
            "ha-status": self.status,
            "ha-sync": self.sync,
            "ha-switch": self.switch,
        }

    def help(self) -> List[Tuple[str, str]]:
        return [
            ("ha-init", "Initialize HA configuration file"),
            ("ha-use", "Switch to a failover group"),
            ("ha-status", "Show HA status and exhausted providers"),
            ("ha-sync", "Sync all credentials from the auth file to ha.json"),
            ("ha-switch", "Switch to a different credential for a provider"),
        ]

    def handle(self, command: str, name: str) -> Optional[bool]:
        """Run a command. Returns True when handled, None for unknown names."""
        handler = self._handlers.get(name)
        if handler is None:
            return None
        args = command.strip().split()[1:]
        handler(args)
        return True

    # =========================================================================
    # Handlers
    # =========================================================================

    def init(self, args: List[str]) -> None:
        store = self.orchestrator.config_store
        if store.exists():
            emit_warning("HA configuration already exists; not overwriting it")
            return

        auth = self.orchestrator.credential_store.load_all()
        provider_ids = list(auth) or list(FALLBACK_PROVIDERS)
        cfg = HaConfig(
            groups={
                DEFAULT_GROUP_ID: Group(
                    name="Default",
                    entries=[GroupEntry(id=p) for p in provider_ids],
                )
            },
            default_group=DEFAULT_GROUP_ID,
            default_cooldown_ms=DEFAULT_COOLDOWN_MS,
            credentials={},
        )
        if not store.save_config(cfg):
            emit_error("Failed to write ha.json. Check file permissions.")
            return

        self.orchestrator.load()
        emit_success(
            f"Created ha.json with {len(provider_ids)} provider(s). "
            "Run /ha-sync to sync credentials."
        )

    def use(self, args: List[str]) -> None:
        if not args:
            emit_error("Usage: /ha-use <group-name>")
            return
        group_name = args[0]
        if not self.orchestrator.switch_group(group_name):
            emit_error(f"Group '{group_name}' not found in ha.json")
            return
        emit_info(f"Switched to HA group: {group_name}")

    def status(self, args: List[str]) -> None:
        orchestrator = self.orchestrator
        cfg = orchestrator.config
        if cfg is None:
            emit_warning(NOT_CONFIGURED)
            return

        selection = orchestrator.selection
        registry = orchestrator.registry
        fields: Dict[str, str] = {"Active group": selection.active_group or "none"}

        group = orchestrator.current_group()
        if group is not None:
            for entry in group.entries:
                provider, _ = parse_entry_id(entry.id)
                active = selection.active_credential_by_provider.get(provider)
                state = "❌ exhausted" if registry.is_exhausted(entry.id) else "✅ available"
                fields[entry.id] = f"[{active}] {state}" if active else state

        for provider, stored in cfg.credentials.items():
            if not stored:
                continue
            fields[f"Credentials: {provider}"] = (
                f"{', '.join(stored)} (active: {selection.credential_for(provider)})"
            )

        now = registry.now()
        for entry in registry.snapshot():
            minutes = math.ceil(entry.remaining_ms(now) / 1000 / 60)
            fields[f"Cooldown: {entry.key}"] = f"{minutes}m remaining"

        get_message_bus().emit(
            StatusPanelMessage(
                title="HA Status", fields=fields, category=MessageCategory.COMMAND
            )
        )

    def sync(self, args: List[str]) -> None:
        if self.orchestrator.config is None:
            emit_warning(NOT_CONFIGURED)
            return
        added = self.orchestrator.sync_credentials()
        self.orchestrator.refresh_active_credentials()
        if added:
            for provider, name in added.items():
                emit_info(f"Added {provider} credential as \"{name}\"")
        emit_success("Synced credentials from the auth file to ha.json")

    def switch(self, args: List[str]) -> None:
        if len(args) < 2:
            emit_error("Usage: /ha-switch <provider> <credential-name>")
            emit_info("Example: /ha-switch google-gemini-cli backup-1")
            return
        provider, name = args[0], args[1]
        if self.orchestrator.switch_credential(provider, name):
            emit_success(f"Switched {provider} to \"{name}\"")
        else:
            emit_error(
                f"Failed to switch. Credential \"{name}\" not found for {provider}."
            )
