"""Wire the failover engine into a host's lifecycle hooks.

    from ha_failover.register_callbacks import install
    orchestrator = install(my_host)

After install() the host only has to fire on_turn_start / on_turn_end and
forward slash commands through on_custom_command.
"""

import logging
from typing import Any, List, Optional, Tuple

from ha_failover.callbacks import register_callback, unregister_callback
from ha_failover.commands import FailoverCommands
from ha_failover.config import JsonConfigStore, load_engine_settings
from ha_failover.core.exhaustion import Clock
from ha_failover.core.orchestrator import (
    ConfigStore,
    CredentialStore,
    FailoverOrchestrator,
    FailoverResult,
)
from ha_failover.core.settings import EngineSettings
from ha_failover.credential_store import AuthFileCredentialStore
from ha_failover.host import HostAPI, TurnEvent

logger = logging.getLogger(__name__)

_installed: List[Tuple[str, Any]] = []


def install(
    host: HostAPI,
    config_store: Optional[ConfigStore] = None,
    credential_store: Optional[CredentialStore] = None,
    settings: Optional[EngineSettings] = None,
    clock: Optional[Clock] = None,
) -> FailoverOrchestrator:
    """Build an orchestrator for host, load ha.json and register its hooks.

    Calling install() again replaces the previously installed hooks.
    """
    uninstall()

    orchestrator = FailoverOrchestrator(
        host,
        config_store or JsonConfigStore(),
        credential_store or AuthFileCredentialStore(),
        settings=settings or load_engine_settings(),
        clock=clock,
    )
    if orchestrator.load() is None:
        logger.info("No ha.json found. Run /ha-init to create one.")

    commands = FailoverCommands(orchestrator)

    async def _on_turn_start(event: Optional[TurnEvent] = None) -> None:
        await orchestrator.handle_turn_start(event)

    async def _on_turn_end(event: TurnEvent) -> FailoverResult:
        return await orchestrator.handle_turn_end(event)

    hooks = [
        ("turn_start", _on_turn_start),
        ("turn_end", _on_turn_end),
        ("custom_command", commands.handle),
        ("custom_command_help", commands.help),
    ]
    for phase, func in hooks:
        register_callback(phase, func)
        _installed.append((phase, func))

    logger.debug("HA failover hooks installed")
    return orchestrator


def uninstall() -> None:
    """Remove every hook registered by install()."""
    while _installed:
        phase, func = _installed.pop()
        unregister_callback(phase, func)
