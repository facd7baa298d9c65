import configparser
import json
import logging
import os
import pathlib
from typing import Optional

from pydantic import ValidationError

from ha_failover.core.models import HaConfig
from ha_failover.core.retry_coordinator import (
    DEFAULT_LOCK_SECONDS,
    DEFAULT_RETRY_DELAY_SECONDS,
)
from ha_failover.core.settings import (
    CAPACITY_SCOPE_CREDENTIAL,
    CAPACITY_SCOPES,
    DEFAULT_DELIVERY_MODE,
    EngineSettings,
)

logger = logging.getLogger(__name__)


def _get_xdg_dir(env_var: str) -> str:
    """
    Get directory for ha_failover files, defaulting to ~/.ha_failover.

    The XDG path is only used when the corresponding environment variable is
    explicitly set by the user.
    """
    xdg_base = os.getenv(env_var)
    if xdg_base:
        return os.path.join(xdg_base, "ha_failover")
    return os.path.join(os.path.expanduser("~"), ".ha_failover")


CONFIG_DIR = _get_xdg_dir("XDG_CONFIG_HOME")

# Durable failover configuration (groups, cooldowns, stored credentials)
HA_CONFIG_FILE = os.path.join(CONFIG_DIR, "ha.json")
# Engine tunables
ENGINE_CONFIG_FILE = os.path.join(CONFIG_DIR, "ha.cfg")
# Credential file the host authenticates outgoing requests with
AUTH_FILE = os.environ.get("HA_FAILOVER_AUTH_FILE") or os.path.join(
    CONFIG_DIR, "auth.json"
)

DEFAULT_SECTION = "ha"
LOCAL_CONFIG_FILE = ".ha_failover.cfg"


# =============================================================================
# Engine tunables (ha.cfg)
# =============================================================================


def _get_local_config_path() -> Optional[str]:
    """Path to .ha_failover.cfg in the current directory, if present."""
    local_path = os.path.join(os.getcwd(), LOCAL_CONFIG_FILE)
    if os.path.isfile(local_path):
        return local_path
    return None


def get_value(key: str):
    """Get config value with local directory override support.

    Priority order:
    1. Local .ha_failover.cfg in current directory (project-specific)
    2. Global ha.cfg in the config directory (user-wide)
    """
    local_config_path = _get_local_config_path()
    if local_config_path:
        config = configparser.ConfigParser()
        config.read(local_config_path)
        val = config.get(DEFAULT_SECTION, key, fallback=None)
        if val is not None:
            return val

    config = configparser.ConfigParser()
    config.read(ENGINE_CONFIG_FILE)
    return config.get(DEFAULT_SECTION, key, fallback=None)


def set_config_value(key: str, value: str) -> None:
    """Sets a value in the global ha.cfg."""
    os.makedirs(CONFIG_DIR, mode=0o700, exist_ok=True)
    config = configparser.ConfigParser()
    config.read(ENGINE_CONFIG_FILE)
    if DEFAULT_SECTION not in config:
        config[DEFAULT_SECTION] = {}
    config[DEFAULT_SECTION][key] = value
    with open(ENGINE_CONFIG_FILE, "w") as f:
        config.write(f)


def _get_float(key: str, default: float) -> float:
    val = get_value(key)
    if val is None:
        return default
    try:
        return float(val)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for {key!r} in ha.cfg: {val!r}, using {default}")
        return default


def get_retry_lock_seconds() -> float:
    return max(0.0, _get_float("retry_lock_seconds", DEFAULT_LOCK_SECONDS))


def get_retry_delay_seconds() -> float:
    return max(0.0, _get_float("retry_delay_seconds", DEFAULT_RETRY_DELAY_SECONDS))


def get_retry_delivery_mode() -> str:
    return get_value("retry_delivery_mode") or DEFAULT_DELIVERY_MODE


def get_capacity_cooldown_scope() -> str:
    """Which key a capacity error puts into cooldown.

    "credential" (default) treats it like a quota error and rotates accounts
    first; "provider" cools the endpoint down and goes straight to
    cross-provider rotation.
    """
    val = (get_value("capacity_cooldown_scope") or CAPACITY_SCOPE_CREDENTIAL).strip().lower()
    if val not in CAPACITY_SCOPES:
        logger.warning(f"Unknown capacity_cooldown_scope {val!r}, using credential")
        return CAPACITY_SCOPE_CREDENTIAL
    return val


def load_engine_settings() -> EngineSettings:
    return EngineSettings(
        retry_lock_seconds=get_retry_lock_seconds(),
        retry_delay_seconds=get_retry_delay_seconds(),
        retry_delivery_mode=get_retry_delivery_mode(),
        capacity_cooldown_scope=get_capacity_cooldown_scope(),
    )


# =============================================================================
# Failover configuration (ha.json)
# =============================================================================


def load_ha_config(path: Optional[str] = None) -> Optional[HaConfig]:
    """Load ha.json. Returns None when missing or unreadable."""
    config_path = pathlib.Path(path or HA_CONFIG_FILE)
    if not config_path.exists():
        return None
    try:
        with open(config_path, "r", encoding="utf-8") as handle:
            return HaConfig.model_validate(json.load(handle))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Failed to load {config_path}: {e}")
        return None


def save_ha_config(cfg: HaConfig, path: Optional[str] = None) -> bool:
    """Write ha.json. Returns False (and logs) on failure."""
    config_path = pathlib.Path(path or HA_CONFIG_FILE)
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        with open(config_path, "w", encoding="utf-8") as handle:
            json.dump(cfg.to_json_dict(), handle, indent=2)
        return True
    except OSError as e:
        logger.error(f"Failed to save {config_path}: {e}")
        return False


class JsonConfigStore:
    """Configuration Store backed by ha.json.

    The path is resolved on each call so tests (and users) can repoint
    HA_CONFIG_FILE at runtime.
    """

    def __init__(self, path: Optional[str] = None):
        self._path = path

    @property
    def path(self) -> str:
        return self._path or HA_CONFIG_FILE

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load_config(self) -> Optional[HaConfig]:
        return load_ha_config(self.path)

    def save_config(self, cfg: HaConfig) -> bool:
        return save_ha_config(cfg, self.path)
