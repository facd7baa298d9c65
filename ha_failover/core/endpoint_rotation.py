"""Endpoint Rotator - cross-provider rotation within a failover group.

The scan starts at the entry after the current endpoint and wraps around,
visiting each entry at most once per pass, so a group where nothing is usable
terminates after len(entries) steps.

Model resolution for a provider-only entry picks the first model the host
lists for that provider. The host's enumeration order is taken as-is and is
never re-sorted, so the same listing always yields the same pick.
"""

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, List, Optional, Protocol, Sequence

from ha_failover.host import ModelDescriptor, maybe_await

from .exhaustion import ExhaustionRegistry
from .models import Group, GroupEntry, endpoint_key, parse_entry_id

logger = logging.getLogger(__name__)


class AvailabilityLookup(Protocol):
    def list_available_models(self, provider_id: str) -> Sequence[ModelDescriptor]:
        ...

    def get_credential_for_model(self, model: ModelDescriptor) -> Any:
        ...


@dataclass(frozen=True)
class EndpointCandidate:
    """A group entry that survived every check, with its resolved model."""

    entry: GroupEntry
    model: ModelDescriptor
    index: int


def find_entry_index(entries: Sequence[GroupEntry], current_endpoint_id: Optional[str]) -> int:
    """Index of the entry for the current endpoint, -1 when absent.

    An exact id match wins; otherwise the first entry for the same provider.
    """
    if not current_endpoint_id:
        return -1
    for i, entry in enumerate(entries):
        if entry.id == current_endpoint_id:
            return i
    current_provider, _ = parse_entry_id(current_endpoint_id)
    for i, entry in enumerate(entries):
        if parse_entry_id(entry.id)[0] == current_provider:
            return i
    return -1


def scan_order(entry_count: int, current_index: int) -> List[int]:
    """Circular visiting order starting right after current_index."""
    if entry_count <= 0:
        return []
    start = (current_index + 1) % entry_count
    return [(start + step) % entry_count for step in range(entry_count)]


def resolve_model(
    entry: GroupEntry, available: Sequence[ModelDescriptor]
) -> Optional[ModelDescriptor]:
    provider, model_id = parse_entry_id(entry.id)
    models = [m for m in available if m.provider == provider]
    if model_id:
        return next((m for m in models if m.id == model_id), None)
    return models[0] if models else None


async def iter_endpoints(
    group: Optional[Group],
    current_endpoint_id: Optional[str],
    registry: ExhaustionRegistry,
    lookup: AvailabilityLookup,
) -> AsyncIterator[EndpointCandidate]:
    """Yield usable endpoints in rotation order; every entry is checked once."""
    if group is None or not group.entries:
        return

    entries = group.entries
    current_index = find_entry_index(entries, current_endpoint_id)

    for index in scan_order(len(entries), current_index):
        entry = entries[index]
        provider, _ = parse_entry_id(entry.id)

        if registry.is_exhausted(entry.id):
            logger.info(f"Skipping exhausted entry: {entry.id}")
            continue

        try:
            listed = await maybe_await(lookup.list_available_models(provider))
            available = list(listed or [])
        except Exception as e:
            logger.warning(f"Listing models for {provider} failed: {e}")
            continue

        model = resolve_model(entry, available)
        if model is None:
            logger.info(f"No model resolvable for entry {entry.id}")
            continue

        if registry.is_exhausted(endpoint_key(model.provider, model.id)):
            logger.info(f"Skipping exhausted model: {model.endpoint_id}")
            continue

        try:
            credential = await maybe_await(lookup.get_credential_for_model(model))
        except Exception as e:
            logger.warning(f"Credential lookup for {model.endpoint_id} failed: {e}")
            credential = None
        if not credential:
            logger.info(f"No usable credential for {model.endpoint_id}")
            continue

        yield EndpointCandidate(entry=entry, model=model, index=index)


async def next_endpoint(
    group: Optional[Group],
    current_endpoint_id: Optional[str],
    registry: ExhaustionRegistry,
    lookup: AvailabilityLookup,
) -> Optional[EndpointCandidate]:
    """First usable endpoint after the current one, or None."""
    candidates = iter_endpoints(group, current_endpoint_id, registry, lookup)
    try:
        return await candidates.__anext__()
    except StopAsyncIteration:
        return None
    finally:
        await candidates.aclose()
