"""Credential Rotator - same-provider account rotation."""

import logging
from typing import Any, Iterator, List, Mapping, Optional

from .exhaustion import ExhaustionRegistry
from .models import credential_key

logger = logging.getLogger(__name__)


def credential_names(credential_set: Optional[Mapping[str, Any]]) -> List[str]:
    """Stored credential names in insertion order, ignoring non-blob values."""
    if not credential_set:
        return []
    return [
        name for name, blob in credential_set.items() if isinstance(blob, Mapping)
    ]


def iter_credentials(
    provider_id: str,
    credential_set: Optional[Mapping[str, Any]],
    active_name: str,
    registry: ExhaustionRegistry,
) -> Iterator[str]:
    """Yield rotation candidates after active_name, circularly, once each.

    The active credential itself and exhausted credentials are skipped. When
    active_name is not stored the scan starts at the first credential.
    """
    names = credential_names(credential_set)
    if len(names) <= 1:
        return

    try:
        start = (names.index(active_name) + 1) % len(names)
    except ValueError:
        start = 0

    for offset in range(len(names)):
        name = names[(start + offset) % len(names)]
        if name == active_name:
            continue
        if registry.is_exhausted(credential_key(provider_id, name)):
            logger.debug("Skipping exhausted credential %s for %s", name, provider_id)
            continue
        yield name


def next_credential(
    provider_id: str,
    credential_set: Optional[Mapping[str, Any]],
    active_name: str,
    registry: ExhaustionRegistry,
) -> Optional[str]:
    """Return the next usable credential name, or None."""
    return next(
        iter_credentials(provider_id, credential_set, active_name, registry), None
    )
