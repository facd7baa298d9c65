"""Pytest configuration and fixtures for ha-failover tests.

This file intentionally keeps the test environment lean (no extra deps).
To support `async def` tests without pytest-asyncio, we provide a minimal
hook that runs coroutine test functions using the stdlib's asyncio.
"""

import asyncio
import inspect
import os
from typing import Any, Dict, List, Optional, Tuple

import pytest

from ha_failover import config as ha_config
from ha_failover.callbacks import clear_callbacks
from ha_failover.core.models import HaConfig
from ha_failover.core.orchestrator import FailoverOrchestrator
from ha_failover.core.settings import EngineSettings
from ha_failover.host import BaseHost, ModelDescriptor
from ha_failover.messaging import reset_message_bus


@pytest.fixture(autouse=True)
def isolate_config_between_tests(tmp_path_factory, monkeypatch):
    """Point every config path at a fresh temp directory.

    This prevents tests from reading or modifying the user's real ha.json,
    ha.cfg or auth file.
    """
    config_dir = tmp_path_factory.mktemp("ha_failover_config")
    monkeypatch.setattr(ha_config, "CONFIG_DIR", str(config_dir))
    monkeypatch.setattr(ha_config, "HA_CONFIG_FILE", str(config_dir / "ha.json"))
    monkeypatch.setattr(ha_config, "ENGINE_CONFIG_FILE", str(config_dir / "ha.cfg"))
    monkeypatch.setattr(ha_config, "AUTH_FILE", str(config_dir / "auth.json"))
    # Keep a stray .ha_failover.cfg in the cwd from leaking in
    monkeypatch.chdir(tmp_path_factory.mktemp("cwd"))

    clear_callbacks()
    reset_message_bus()
    yield
    clear_callbacks()
    reset_message_bus()


class FakeClock:
    """Millisecond clock the tests advance by hand."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class FakeHost(BaseHost):
    """Host double with a scripted model catalogue that records every call."""

    def __init__(
        self,
        models: Optional[List[ModelDescriptor]] = None,
        current: Optional[ModelDescriptor] = None,
        last_message: Any = "hello",
        credentials: Optional[Dict[str, Any]] = None,
    ):
        self.models = list(models or [])
        self.current = current
        self.last_message = last_message
        # provider id -> opaque key; a provider missing here has no credential
        self.credentials = (
            credentials
            if credentials is not None
            else {m.provider: f"key-{m.provider}" for m in self.models}
        )
        self.declined: set = set()
        self.switches: List[ModelDescriptor] = []
        self.resends: List[Tuple[Any, str]] = []
        self.notices: List[Tuple[str, str]] = []

    def current_model(self) -> Optional[ModelDescriptor]:
        return self.current

    def last_user_message(self) -> Any:
        return self.last_message

    def switch_active_model(self, model: ModelDescriptor) -> bool:
        self.switches.append(model)
        if model.endpoint_id in self.declined:
            return False
        self.current = model
        return True

    def resend_last_message(self, content: Any, delivery_mode: str) -> None:
        self.resends.append((content, delivery_mode))

    def list_available_models(self, provider_id: str) -> List[ModelDescriptor]:
        return [m for m in self.models if m.provider == provider_id]

    def get_credential_for_model(self, model: ModelDescriptor) -> Any:
        return self.credentials.get(model.provider)

    def notify_user(self, text: str, severity: str = "info") -> None:
        self.notices.append((text, severity))
        super().notify_user(text, severity)


class MemoryConfigStore:
    """In-memory Configuration Store."""

    def __init__(self, cfg: Optional[HaConfig] = None):
        self.cfg = cfg
        self.saves = 0

    def exists(self) -> bool:
        return self.cfg is not None

    def load_config(self) -> Optional[HaConfig]:
        return self.cfg

    def save_config(self, cfg: HaConfig) -> bool:
        self.cfg = cfg
        self.saves += 1
        return True


class MemoryCredentialStore:
    """In-memory Credential Store (the host's auth file)."""

    def __init__(self, auth: Optional[Dict[str, Any]] = None, writable: bool = True):
        self.auth = dict(auth or {})
        self.writable = writable
        self.writes: List[Tuple[str, Any]] = []

    def load_all(self) -> Dict[str, Any]:
        return dict(self.auth)

    def load_active_credential(self, provider_id: str) -> Optional[Any]:
        return self.auth.get(provider_id)

    def save_active_credential(self, provider_id: str, blob: Any) -> bool:
        if not self.writable:
            return False
        self.auth[provider_id] = blob
        self.writes.append((provider_id, blob))
        return True


def make_config(
    entries: List[Any],
    credentials: Optional[Dict[str, Dict[str, Any]]] = None,
    cooldown_ms: Optional[int] = None,
) -> HaConfig:
    """Build an HaConfig with a single active group named "main"."""
    data: Dict[str, Any] = {
        "groups": {
            "main": {
                "name": "Main",
                "entries": [e if isinstance(e, dict) else {"id": e} for e in entries],
            }
        },
        "defaultGroup": "main",
        "credentials": credentials or {},
    }
    if cooldown_ms is not None:
        data["defaultCooldownMs"] = cooldown_ms
    return HaConfig.model_validate(data)


def make_orchestrator(
    host: FakeHost,
    cfg: Optional[HaConfig],
    auth: Optional[Dict[str, Any]] = None,
    clock: Optional[FakeClock] = None,
    **settings: Any,
) -> FailoverOrchestrator:
    settings.setdefault("retry_delay_seconds", 0)
    settings.setdefault("retry_lock_seconds", 0.05)
    orchestrator = FailoverOrchestrator(
        host,
        MemoryConfigStore(cfg),
        MemoryCredentialStore(auth),
        settings=EngineSettings(**settings),
        clock=clock,
    )
    orchestrator.load()
    return orchestrator


@pytest.fixture
def tmp_auth_file(tmp_path) -> str:
    return os.path.join(str(tmp_path), "auth.json")


def pytest_pyfunc_call(pyfuncitem: pytest.Item) -> bool | None:
    """Enable running `async def` tests without external plugins.

    If the test function is a coroutine function, execute it via asyncio.run.
    Return True to signal that the call was handled, allowing pytest to
    proceed without complaining about missing async plugins.
    """
    test_func = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_func):
        kwargs = {
            name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
        }
        asyncio.run(test_func(**kwargs))
        return True
    return None
