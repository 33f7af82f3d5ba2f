"""
Actor descriptor snapshots.

A descriptor is fetched fresh on every call and never cached; two fetches of
the same address may disagree while the engine is busy creating picos.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

import structlog

from connectors.engine_client import EngineTransport, descriptor_path, name_path

from .errors import BridgeError, NotFoundError

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Channel:
    """A tagged alias of an actor with its own permission scope."""
    address: str
    tags: frozenset[str]
    name: Optional[str] = None

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(frozen=True)
class ActorDescriptor:
    address: str
    children: tuple[str, ...] = ()
    channels: tuple[Channel, ...] = ()
    installed_capabilities: frozenset[str] = frozenset()

    def channel_with_tag(self, tag: str) -> Optional[Channel]:
        # Runtime order is preserved, so the first match wins.
        for ch in self.channels:
            if ch.has_tag(tag):
                return ch
        return None

    def has_capability(self, capability_id: str) -> bool:
        return capability_id in self.installed_capabilities


def _parse_channel(raw: Any) -> Optional[Channel]:
    if not isinstance(raw, dict) or not raw.get("id"):
        return None
    tags = raw.get("tags") or []
    name = raw.get("name")
    return Channel(
        address=str(raw["id"]),
        tags=frozenset(str(t) for t in tags),
        name=str(name) if name else None,
    )


def parse_descriptor(address: str, data: Any) -> ActorDescriptor:
    if not isinstance(data, dict):
        data = {}
    channels = tuple(ch for ch in (_parse_channel(c) for c in data.get("channels") or []) if ch)
    rulesets = data.get("rulesets") or []
    installed = frozenset(
        str(rs["rid"]) for rs in rulesets if isinstance(rs, dict) and rs.get("rid")
    )
    return ActorDescriptor(
        address=address,
        children=tuple(str(c) for c in data.get("children") or []),
        channels=channels,
        installed_capabilities=installed,
    )


def fetch_descriptor(transport: EngineTransport, address: str) -> ActorDescriptor:
    """Fetch a normalized snapshot of `address`; transport and HTTP failures propagate."""
    data = transport.get_json(descriptor_path(address))
    return parse_descriptor(address, data)


def find_channel_by_tag(transport: EngineTransport, address: str, tag: str) -> Channel:
    descriptor = fetch_descriptor(transport, address)
    channel = descriptor.channel_with_tag(tag)
    if channel is None:
        raise NotFoundError(f"no channel tagged {tag!r} on {address}")
    return channel


def fetch_name(transport: EngineTransport, address: str) -> Any:
    return transport.get_json(name_path(address))


def find_child_by_name(transport: EngineTransport, address: str, name: str) -> Optional[str]:
    """
    Return the first child of `address` whose display name is exactly `name`.

    One name lookup per child, in the order the engine lists them. A child
    that fails to answer (typically still initializing) is skipped. Failure
    to read the parent itself propagates.
    """
    descriptor = fetch_descriptor(transport, address)
    for child in descriptor.children:
        try:
            actual = fetch_name(transport, child)
        except BridgeError as exc:
            log.info("descriptor.child_skipped", parent=address, child=child, error=str(exc))
            continue
        if actual == name:
            return child
    log.debug("descriptor.child_not_found", parent=address, name=name, children=len(descriptor.children))
    return None
