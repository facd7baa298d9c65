"""Matching and syncing credential blobs between the auth file and ha.json.

Blobs are opaque except for their "type" discriminator: "oauth" blobs are
identified by their refresh token, "api_key" blobs by their key. Blobs of
any other type only match when they are identical.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from .models import DEFAULT_CREDENTIAL_NAME, HaConfig

logger = logging.getLogger(__name__)


class CredentialType:
    """Types of credentials supported."""

    API_KEY = "api_key"
    OAUTH = "oauth"


def credentials_match(a: Any, b: Any) -> bool:
    if not isinstance(a, Mapping) or not isinstance(b, Mapping):
        return False
    if a.get("type") != b.get("type"):
        return False
    if a.get("type") == CredentialType.OAUTH:
        return a.get("refresh") is not None and a.get("refresh") == b.get("refresh")
    if a.get("type") == CredentialType.API_KEY:
        return a.get("key") is not None and a.get("key") == b.get("key")
    return dict(a) == dict(b)


def next_free_name(existing: Mapping[str, Any]) -> str:
    """Return "primary" if unused, else the first free "backup-N"."""
    if DEFAULT_CREDENTIAL_NAME not in existing:
        return DEFAULT_CREDENTIAL_NAME
    counter = 1
    while f"backup-{counter}" in existing:
        counter += 1
    return f"backup-{counter}"


def find_matching_name(stored: Mapping[str, Any], blob: Any) -> Optional[str]:
    for name, existing in stored.items():
        if credentials_match(blob, existing):
            return name
    return None


def sync_auth_into_config(config: HaConfig, auth: Mapping[str, Any]) -> Dict[str, str]:
    """Copy unseen auth blobs into config.credentials.

    Returns {provider: assigned_name} for every blob that was added; an empty
    result means config was left untouched.
    """
    added: Dict[str, str] = {}
    for provider_id, blob in auth.items():
        if not isinstance(blob, Mapping):
            continue
        stored = config.credentials_for(provider_id)
        if find_matching_name(stored, blob) is not None:
            continue
        name = next_free_name(stored)
        config.credentials[provider_id] = {**stored, name: dict(blob)}
        added[provider_id] = name
        logger.info(f"Synced {blob.get('type')} for {provider_id} as \"{name}\"")
    return added


def detect_active_credentials(config: HaConfig, auth: Mapping[str, Any]) -> Dict[str, str]:
    """Which stored credential each provider's auth blob corresponds to."""
    active: Dict[str, str] = {}
    for provider_id, blob in auth.items():
        name = find_matching_name(config.credentials_for(provider_id), blob)
        if name is not None:
            active[provider_id] = name
    return active
