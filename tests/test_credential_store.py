"""Tests for the auth-file credential store and credential sync."""

import json
import os
import stat

from ha_failover import config as ha_config
from ha_failover.core.credential_sync import (
    credentials_match,
    detect_active_credentials,
    next_free_name,
    sync_auth_into_config,
)
from ha_failover.core.models import HaConfig
from ha_failover.credential_store import AuthFileCredentialStore

OAUTH_A = {"type": "oauth", "refresh": "r-a", "access": "x1", "expires": 1}
OAUTH_A_REFRESHED = {"type": "oauth", "refresh": "r-a", "access": "x2", "expires": 2}
OAUTH_B = {"type": "oauth", "refresh": "r-b", "access": "y", "expires": 1}
KEY_A = {"type": "api_key", "key": "sk-a"}


class TestAuthFileCredentialStore:
    def test_missing_file_is_empty(self):
        assert AuthFileCredentialStore().load_all() == {}

    def test_save_and_load(self):
        store = AuthFileCredentialStore()
        assert store.save_active_credential("openai", KEY_A)
        assert store.load_active_credential("openai") == KEY_A
        with open(ha_config.AUTH_FILE) as f:
            assert json.load(f) == {"openai": KEY_A}

    def test_save_keeps_other_providers(self):
        store = AuthFileCredentialStore()
        store.save_all({"anthropic": OAUTH_A})
        store.save_active_credential("openai", KEY_A)
        assert store.load_all() == {"anthropic": OAUTH_A, "openai": KEY_A}

    def test_file_permissions(self):
        store = AuthFileCredentialStore()
        store.save_all({"openai": KEY_A})
        mode = stat.S_IMODE(os.stat(ha_config.AUTH_FILE).st_mode)
        assert mode == 0o600

    def test_corrupt_file_is_empty(self):
        with open(ha_config.AUTH_FILE, "w") as f:
            f.write("[]")
        assert AuthFileCredentialStore().load_all() == {}

    def test_explicit_path(self, tmp_auth_file):
        store = AuthFileCredentialStore(tmp_auth_file)
        store.save_all({"openai": KEY_A})
        assert os.path.isfile(tmp_auth_file)
        assert not os.path.exists(ha_config.AUTH_FILE)

    def test_write_failure_returns_false(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")
        store = AuthFileCredentialStore(str(blocker / "auth.json"))
        assert not store.save_active_credential("openai", KEY_A)


class TestCredentialsMatch:
    def test_oauth_matches_on_refresh_token(self):
        assert credentials_match(OAUTH_A, OAUTH_A_REFRESHED)
        assert not credentials_match(OAUTH_A, OAUTH_B)

    def test_api_key_matches_on_key(self):
        assert credentials_match(KEY_A, dict(KEY_A, label="x"))
        assert not credentials_match(KEY_A, {"type": "api_key", "key": "sk-b"})

    def test_type_mismatch(self):
        assert not credentials_match(KEY_A, OAUTH_A)

    def test_other_types_need_identical_blobs(self):
        custom = {"type": "custom", "token": "t"}
        assert credentials_match(custom, dict(custom))
        assert not credentials_match(custom, dict(custom, token="u"))

    def test_non_mappings(self):
        assert not credentials_match("sk-a", "sk-a")


class TestSync:
    """Importing auth-file blobs into ha.json."""

    def test_next_free_name(self):
        assert next_free_name({}) == "primary"
        assert next_free_name({"primary": {}}) == "backup-1"
        assert next_free_name({"primary": {}, "backup-1": {}}) == "backup-2"
        assert next_free_name({"primary": {}, "backup-2": {}}) == "backup-1"

    def test_new_blobs_are_added(self):
        cfg = HaConfig()
        added = sync_auth_into_config(cfg, {"anthropic": OAUTH_A, "openai": KEY_A})
        assert added == {"anthropic": "primary", "openai": "primary"}
        assert cfg.credentials["anthropic"] == {"primary": OAUTH_A}

    def test_second_account_becomes_backup(self):
        cfg = HaConfig(credentials={"anthropic": {"primary": OAUTH_A}})
        added = sync_auth_into_config(cfg, {"anthropic": OAUTH_B})
        assert added == {"anthropic": "backup-1"}
        assert list(cfg.credentials["anthropic"]) == ["primary", "backup-1"]

    def test_known_blob_is_not_duplicated(self):
        cfg = HaConfig(credentials={"anthropic": {"primary": OAUTH_A}})
        assert sync_auth_into_config(cfg, {"anthropic": OAUTH_A_REFRESHED}) == {}
        assert cfg.credentials["anthropic"] == {"primary": OAUTH_A}

    def test_non_blob_entries_ignored(self):
        cfg = HaConfig()
        assert sync_auth_into_config(cfg, {"weird": "string"}) == {}
        assert cfg.credentials == {}

    def test_config_untouched_when_nothing_added(self):
        cfg = HaConfig(credentials={"openai": {"primary": KEY_A}, "gemini": {}})
        before = cfg.to_json_dict()
        assert sync_auth_into_config(cfg, {"openai": dict(KEY_A)}) == {}
        assert cfg.to_json_dict() == before
        assert "anthropic" not in cfg.credentials

    def test_provider_without_stored_map(self):
        cfg = HaConfig(credentials={"gemini": {}})
        assert sync_auth_into_config(cfg, {"gemini": OAUTH_A}) == {"gemini": "primary"}
        assert cfg.credentials["gemini"] == {"primary": OAUTH_A}

    def test_detect_active(self):
        cfg = HaConfig(
            credentials={"anthropic": {"primary": OAUTH_A, "backup-1": OAUTH_B}}
        )
        assert detect_active_credentials(cfg, {"anthropic": OAUTH_B}) == {
            "anthropic": "backup-1"
        }
        assert detect_active_credentials(cfg, {"openai": KEY_A}) == {}
