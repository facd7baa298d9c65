"""Credential Store - the auth file the host reads to authenticate requests.

Switching a credential means copying a blob from the ha.json credential set
into this file under the provider's id. Reads and writes never raise: a
failed read yields an empty mapping, a failed write returns False.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
from typing import Any, Dict, Optional

from ha_failover import config

logger = logging.getLogger(__name__)


class AuthFileCredentialStore:
    """Credential Store backed by a JSON file keyed by provider id."""

    def __init__(self, path: Optional[str] = None):
        self._path = path

    @property
    def path(self) -> pathlib.Path:
        return pathlib.Path(self._path or config.AUTH_FILE)

    def load_all(self) -> Dict[str, Any]:
        try:
            if self.path.exists():
                with open(self.path, "r", encoding="utf-8") as handle:
                    data = json.load(handle)
                if isinstance(data, dict):
                    return data
                logger.error("Ignoring %s: top level is not an object", self.path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load %s: %s", self.path, exc)
        return {}

    def save_all(self, auth: Dict[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            with open(self.path, "w", encoding="utf-8") as handle:
                json.dump(auth, handle, indent=2)
            os.chmod(self.path, 0o600)
            return True
        except OSError as exc:
            logger.error("Failed to save %s: %s", self.path, exc)
            return False

    def load_active_credential(self, provider_id: str) -> Optional[Any]:
        return self.load_all().get(provider_id)

    def save_active_credential(self, provider_id: str, blob: Any) -> bool:
        auth = self.load_all()
        auth[provider_id] = blob
        return self.save_all(auth)
