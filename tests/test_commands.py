"""Tests for the /ha-* commands and hook installation."""

import json

import pytest

from ha_failover import config as ha_config
from ha_failover.callbacks import (
    count_callbacks,
    on_custom_command,
    on_custom_command_help,
    on_turn_end,
)
from ha_failover.commands import FailoverCommands
from ha_failover.core.orchestrator import FailoverResult
from ha_failover.core.settings import EngineSettings
from ha_failover.host import ModelDescriptor, TurnEvent
from ha_failover.messaging import MessageLevel, StatusPanelMessage, get_message_bus
from ha_failover.register_callbacks import install, uninstall
from tests.conftest import FakeHost, make_config, make_orchestrator

P1 = ModelDescriptor("p1", "m1")
P2 = ModelDescriptor("p2", "m2")
PRIMARY = {"type": "api_key", "key": "sk-primary"}
BACKUP = {"type": "api_key", "key": "sk-backup"}


def messages():
    return get_message_bus().get_buffered_messages()


def texts(level=None):
    return [
        m.text
        for m in messages()
        if hasattr(m, "text") and (level is None or m.level is level)
    ]


def write_json(path, data):
    with open(path, "w") as f:
        json.dump(data, f)


class TestCommands:
    """Command handlers against an in-memory orchestrator."""

    def make(self, cfg=None, auth=None, clock=None):
        host = FakeHost(models=[P1, P2], current=P1)
        orchestrator = make_orchestrator(host, cfg, auth=auth, clock=clock)
        return orchestrator, FailoverCommands(orchestrator)

    def test_help_lists_every_command(self):
        _, commands = self.make()
        names = [name for name, _ in commands.help()]
        assert names == ["ha-init", "ha-use", "ha-status", "ha-sync", "ha-switch"]

    def test_unknown_command_not_handled(self):
        _, commands = self.make()
        assert commands.handle("/model gpt", "model") is None

    def test_init_builds_group_from_auth(self):
        orchestrator, commands = self.make(auth={"anthropic": PRIMARY, "openai": BACKUP})
        assert commands.handle("/ha-init", "ha-init") is True

        cfg = orchestrator.config_store.cfg
        assert [e.id for e in cfg.groups["default"].entries] == ["anthropic", "openai"]
        assert cfg.default_group == "default"
        assert orchestrator.active_group == "default"
        assert any("Created ha.json with 2 provider(s)" in t for t in texts())

    def test_init_fallback_providers(self):
        orchestrator, commands = self.make()
        commands.handle("/ha-init", "ha-init")
        entries = orchestrator.config_store.cfg.groups["default"].entries
        assert [e.id for e in entries] == ["anthropic", "google-gemini-cli", "openai"]

    def test_init_refuses_to_overwrite(self):
        cfg = make_config(["p1"])
        orchestrator, commands = self.make(cfg)
        commands.handle("/ha-init", "ha-init")
        assert orchestrator.config_store.cfg is cfg
        assert orchestrator.config_store.saves == 0
        assert texts(MessageLevel.WARNING)

    def test_use_switches_group(self, clock):
        cfg = make_config(["p1", "p2"])
        cfg.groups["other"] = cfg.groups["main"].model_copy()
        orchestrator, commands = self.make(cfg, clock=clock)
        orchestrator.registry.mark_exhausted("p1", 60_000)

        commands.handle("/ha-use other", "ha-use")

        assert orchestrator.active_group == "other"
        assert len(orchestrator.registry) == 0
        assert "Switched to HA group: other" in texts()

    def test_use_unknown_group(self):
        orchestrator, commands = self.make(make_config(["p1"]))
        commands.handle("/ha-use nope", "ha-use")
        assert orchestrator.active_group == "main"
        assert "Group 'nope' not found in ha.json" in texts(MessageLevel.ERROR)

    def test_use_without_argument(self):
        _, commands = self.make(make_config(["p1"]))
        commands.handle("/ha-use", "ha-use")
        assert "Usage: /ha-use <group-name>" in texts(MessageLevel.ERROR)

    def test_status_unconfigured(self):
        _, commands = self.make()
        commands.handle("/ha-status", "ha-status")
        assert "HA not configured. Run /ha-init first." in texts(MessageLevel.WARNING)

    def test_status_panel(self, clock):
        cfg = make_config(
            ["p1", "p2"], credentials={"p1": {"primary": PRIMARY, "backup-1": BACKUP}}
        )
        orchestrator, commands = self.make(cfg, auth={"p1": BACKUP}, clock=clock)
        orchestrator.registry.mark_exhausted("p2", 90_000)

        commands.handle("/ha-status", "ha-status")

        panel = [m for m in messages() if isinstance(m, StatusPanelMessage)][-1]
        assert panel.fields["Active group"] == "main"
        assert panel.fields["p1"] == "[backup-1] ✅ available"
        assert panel.fields["p2"] == "❌ exhausted"
        assert panel.fields["Credentials: p1"] == "primary, backup-1 (active: backup-1)"
        assert panel.fields["Cooldown: p2"] == "2m remaining"

    def test_sync(self):
        orchestrator, commands = self.make(make_config(["p1"]))
        orchestrator.credential_store.auth["p1"] = PRIMARY

        commands.handle("/ha-sync", "ha-sync")

        assert orchestrator.config.credentials["p1"] == {"primary": PRIMARY}
        assert orchestrator.selection.credential_for("p1") == "primary"
        assert 'Added p1 credential as "primary"' in texts()

    def test_sync_unconfigured(self):
        _, commands = self.make()
        commands.handle("/ha-sync", "ha-sync")
        assert texts(MessageLevel.WARNING)

    def test_switch(self):
        cfg = make_config(["p1"], credentials={"p1": {"primary": PRIMARY, "backup-1": BACKUP}})
        orchestrator, commands = self.make(cfg)

        commands.handle("/ha-switch p1 backup-1", "ha-switch")

        assert orchestrator.credential_store.auth["p1"] == BACKUP
        assert 'Switched p1 to "backup-1"' in texts(MessageLevel.SUCCESS)

    def test_switch_unknown_credential(self):
        orchestrator, commands = self.make(make_config(["p1"]))
        commands.handle("/ha-switch p1 backup-3", "ha-switch")
        assert texts(MessageLevel.ERROR)

    def test_switch_usage(self):
        _, commands = self.make(make_config(["p1"]))
        commands.handle("/ha-switch p1", "ha-switch")
        assert "Usage: /ha-switch <provider> <credential-name>" in texts(MessageLevel.ERROR)


class TestInstall:
    """Wiring the engine into the hook registry with file-backed stores."""

    def setup_files(self):
        write_json(
            ha_config.HA_CONFIG_FILE,
            {
                "groups": {"main": {"name": "Main", "entries": [{"id": "p1"}, {"id": "p2"}]}},
                "defaultGroup": "main",
            },
        )
        write_json(ha_config.AUTH_FILE, {"p1": PRIMARY})

    def test_install_registers_hooks_and_loads(self):
        self.setup_files()
        orchestrator = install(FakeHost(models=[P1, P2], current=P1))

        assert orchestrator.active_group == "main"
        assert orchestrator.settings.retry_lock_seconds == 5.0
        assert count_callbacks("turn_start") == 1
        assert count_callbacks("turn_end") == 1
        with open(ha_config.HA_CONFIG_FILE) as f:
            assert json.load(f)["credentials"] == {"p1": {"primary": PRIMARY}}

    def test_install_twice_replaces_hooks(self):
        install(FakeHost())
        install(FakeHost())
        assert count_callbacks("turn_end") == 1
        uninstall()
        assert count_callbacks() == 0

    def test_commands_routed(self):
        install(FakeHost())
        assert on_custom_command("/ha-init", "ha-init") == [True]
        assert on_custom_command("/nope", "nope") == [None]
        assert ("ha-status", "Show HA status and exhausted providers") in (
            on_custom_command_help()[0]
        )
        with open(ha_config.HA_CONFIG_FILE) as f:
            assert json.load(f)["defaultGroup"] == "default"

    @pytest.mark.asyncio
    async def test_turn_end_hook_fails_over(self, clock):
        self.setup_files()
        host = FakeHost(models=[P1, P2], current=P1)
        install(host, settings=EngineSettings(retry_delay_seconds=0), clock=clock)

        results = await on_turn_end(
            TurnEvent(role="assistant", error_text="429", stop_reason="error")
        )

        assert isinstance(results[0], FailoverResult)
        assert results[0].failover_endpoint == "p2/m2"
        with open(ha_config.AUTH_FILE) as f:
            assert json.load(f) == {"p1": PRIMARY}
        uninstall()
