"""
Hierarchy resolution.

Every call walks the full chain from the root again; nothing is cached, so
a resolved address is never stale but costs one round trip per hop (plus
one per child inspected during a name lookup).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import structlog

from connectors.engine_client import ROOT_CONTEXT_PATH, EngineTransport, query_path

from .descriptors import find_channel_by_tag, find_child_by_name
from .errors import BridgeError, NotFoundError, ResolutionError

log = structlog.get_logger(__name__)

T = TypeVar("T")

HOP_ROOT = "root_context"
HOP_NAMED_CHILD = "named_child"
HOP_ELEVATED_CHANNEL = "elevated_channel"
HOP_NESTED_QUERY = "nested_query"
HOP_DOMAIN_CHANNEL = "domain_channel"


@dataclass(frozen=True)
class HierarchyPath:
    owner_name: str = "Owner"
    elevated_tag: str = "initialization"
    nested_capability: str = "io.picolabs.manifold_owner"
    nested_operation: str = "getManifoldPicoEci"
    domain_tag: str = "manifold"


DEFAULT_PATH = HierarchyPath()

SKILLS_REGISTRY_NAME = "Skills Registry"
SKILLS_REGISTRY_TAG = "skills_registry"


def _hop(hop: str, address: str, step: Callable[[], T]) -> T:
    try:
        value = step()
    except ResolutionError:
        raise
    except BridgeError as exc:
        log.warning("resolve.hop_failed", hop=hop, address=address, error=str(exc))
        raise ResolutionError(hop, str(exc), address=address) from exc
    log.debug("resolve.hop", hop=hop, address=address, result=value)
    return value


def resolve_root(transport: EngineTransport) -> str:
    return _hop(HOP_ROOT, ROOT_CONTEXT_PATH, transport.root_address)


def _named_child(transport: EngineTransport, parent: str, name: str) -> str:
    child = find_child_by_name(transport, parent, name)
    if child is None:
        raise NotFoundError(f"no child named {name!r} under {parent}")
    return child


def _nested_address(transport: EngineTransport, channel: str, capability_id: str, operation: str) -> str:
    result = transport.post_json(query_path(channel, capability_id, operation))
    if not isinstance(result, str) or not result:
        raise NotFoundError(f"{capability_id}/{operation} returned no address (got {result!r})")
    return result


def resolve(transport: EngineTransport, root_address: str, path: HierarchyPath = DEFAULT_PATH) -> str:
    """
    Walk root -> named owner child -> elevated channel -> nested actor -> domain channel.

    Each step depends on the previous one, so the requests are strictly
    sequential. A failure raises ResolutionError naming the hop; partial
    setup (owner not created yet, ruleset missing) surfaces this way.
    """
    owner = _hop(HOP_NAMED_CHILD, root_address, lambda: _named_child(transport, root_address, path.owner_name))
    elevated = _hop(
        HOP_ELEVATED_CHANNEL,
        owner,
        lambda: find_channel_by_tag(transport, owner, path.elevated_tag).address,
    )
    nested = _hop(
        HOP_NESTED_QUERY,
        elevated,
        lambda: _nested_address(transport, elevated, path.nested_capability, path.nested_operation),
    )
    channel = _hop(
        HOP_DOMAIN_CHANNEL,
        nested,
        lambda: find_channel_by_tag(transport, nested, path.domain_tag).address,
    )
    log.info("resolve.complete", root=root_address, channel=channel)
    return channel


def resolve_named_child_channel(transport: EngineTransport, parent_address: str, name: str, tag: str) -> str:
    """Find the child called `name` under `parent_address` and return its `tag` channel."""
    child = _hop(HOP_NAMED_CHILD, parent_address, lambda: _named_child(transport, parent_address, name))
    return _hop(HOP_DOMAIN_CHANNEL, child, lambda: find_channel_by_tag(transport, child, tag).address)


def resolve_skills_registry(transport: EngineTransport, root_address: str) -> str:
    return resolve_named_child_channel(transport, root_address, SKILLS_REGISTRY_NAME, SKILLS_REGISTRY_TAG)


def _entries(listing: Any) -> list[Any]:
    if isinstance(listing, dict):
        return list(listing.values())
    if isinstance(listing, list):
        return listing
    return []


def resolve_by_name(
    transport: EngineTransport,
    parent_address: str,
    name: str,
    *,
    capability_id: str = "io.picolabs.manifold_pico",
    operation_name: str = "getThings",
    domain_tag: str = "manifold",
    address_key: str = "eci",
) -> str:
    """
    Resolve a human-assigned child name to that child's domain-tagged channel.

    The parent's listing query returns a map of child metadata. Names are not
    unique; the first entry in iteration order wins. Raises NotFoundError when
    no entry matches.
    """
    listing = transport.post_json(query_path(parent_address, capability_id, operation_name))
    for entry in _entries(listing):
        if not isinstance(entry, dict) or entry.get("name") != name:
            continue
        child = entry.get(address_key)
        if not isinstance(child, str) or not child:
            raise NotFoundError(f"child {name!r} under {parent_address} carries no {address_key!r}")
        return find_channel_by_tag(transport, child, domain_tag).address
    raise NotFoundError(f"no child named {name!r} under {parent_address}")
