"""
Manifold convenience operations.

Each call resolves the Manifold channel from the root again (no caching) and
runs one or two envelopes. Resolution failures are folded into the result so
a tool layer only ever handles OperationResult.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

import structlog

from connectors.engine_client import EngineTransport

from .envelope import OperationResult, event, execute, new_correlation_id, query
from .errors import BridgeError, NotFoundError, PollTimeoutError
from .polling import poll_until
from .resolver import DEFAULT_PATH, HierarchyPath, resolve, resolve_root, resolve_skills_registry

log = structlog.get_logger(__name__)

MANIFOLD_CAPABILITY = "io.picolabs.manifold_pico"
SKILLS_CAPABILITY = "io.picolabs.manifold.skills_registry"


def _failure(err: BridgeError, correlation_id: Optional[str], **meta: Any) -> OperationResult:
    hop = getattr(err, "hop", None)
    return OperationResult(
        correlation_id=correlation_id or new_correlation_id(),
        success=False,
        error_code=err.code,
        error_message=str(err),
        error_details={"hop": hop} if hop else None,
        metadata=meta,
    )


def manifold_channel(
    transport: EngineTransport,
    root_address: Optional[str] = None,
    path: HierarchyPath = DEFAULT_PATH,
) -> str:
    return resolve(transport, root_address or resolve_root(transport), path)


def find_thing(things: Any, name: str) -> Optional[dict[str, Any]]:
    """First thing whose name matches exactly; duplicate names are not disambiguated."""
    if not isinstance(things, dict):
        return None
    for thing in things.values():
        if isinstance(thing, dict) and thing.get("name") == name:
            return thing
    return None


def list_things(
    transport: EngineTransport,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    try:
        channel = manifold_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="list_things")
    return execute(transport, query(channel, MANIFOLD_CAPABILITY, "getThings", correlation_id=correlation_id))


def _thing_pico_id(
    transport: EngineTransport, channel: str, name: str, correlation_id: Optional[str]
) -> tuple[Optional[str], Optional[OperationResult]]:
    listing = execute(transport, query(channel, MANIFOLD_CAPABILITY, "getThings", correlation_id=correlation_id))
    if not listing.success:
        return None, listing
    thing = find_thing(listing.data, name)
    if thing is None or not thing.get("picoID"):
        return None, _failure(NotFoundError(f"thing {name!r} not found"), correlation_id, thing=name)
    return str(thing["picoID"]), None


def is_a_child(
    transport: EngineTransport,
    thing_name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    try:
        channel = manifold_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="is_a_child")
    pico_id, failed = _thing_pico_id(transport, channel, thing_name, correlation_id)
    if failed is not None:
        return failed
    return execute(
        transport,
        query(channel, MANIFOLD_CAPABILITY, "isAChild", {"picoID": pico_id}, correlation_id=correlation_id),
    )


def create_thing(
    transport: EngineTransport,
    name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
    wait: bool = True,
    interval_s: float = 1.0,
    max_attempts: int = 15,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], Any]] = None,
) -> OperationResult:
    """
    Raise manifold/create_thing. With `wait`, poll getThings until the new
    thing is listed and return its entry as `data["thing"]`.
    """
    try:
        channel = manifold_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="create_thing")

    created = execute(transport, event(channel, "manifold", "create_thing", {"name": name}, correlation_id))
    if not created.success or not wait:
        return created

    def _listed() -> Optional[dict[str, Any]]:
        listing = execute(transport, query(channel, MANIFOLD_CAPABILITY, "getThings"))
        return find_thing(listing.data, name) if listing.success else None

    try:
        thing = poll_until(
            _listed,
            interval_s=interval_s,
            max_attempts=max_attempts,
            cancel=cancel,
            sleep=sleep,
            describe=f"thing {name!r} listed",
        )
    except PollTimeoutError as exc:
        return _failure(exc, created.correlation_id, **created.metadata)

    log.info("operations.thing_created", name=name, pico_id=thing.get("picoID"))
    return created.model_copy(update={"data": {"event": created.data, "thing": thing}})


def remove_thing(
    transport: EngineTransport,
    thing_name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    try:
        channel = manifold_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="remove_thing")
    pico_id, failed = _thing_pico_id(transport, channel, thing_name, correlation_id)
    if failed is not None:
        return failed
    return execute(transport, event(channel, "manifold", "remove_thing", {"picoID": pico_id}, correlation_id))


def change_thing_name(
    transport: EngineTransport,
    thing_name: str,
    changed_name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    try:
        channel = manifold_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="change_thing_name")
    pico_id, failed = _thing_pico_id(transport, channel, thing_name, correlation_id)
    if failed is not None:
        return failed
    return execute(
        transport,
        event(
            channel,
            "manifold",
            "change_thing_name",
            {"picoID": pico_id, "changedName": changed_name},
            correlation_id,
        ),
    )


def skills_channel(transport: EngineTransport, root_address: Optional[str] = None) -> str:
    return resolve_skills_registry(transport, root_address or resolve_root(transport))


def get_skills(
    transport: EngineTransport,
    skill_name: str = "",
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    """All registered skills, or just `skill_name` when given."""
    try:
        channel = skills_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation="get_skills")
    return execute(
        transport,
        query(channel, SKILLS_CAPABILITY, "getSkills", {"name": skill_name}, correlation_id=correlation_id),
    )


def _skills_event(
    transport: EngineTransport,
    operation: str,
    event_type: str,
    attrs: dict[str, Any],
    root_address: Optional[str],
    correlation_id: Optional[str],
) -> OperationResult:
    try:
        channel = skills_channel(transport, root_address)
    except BridgeError as exc:
        return _failure(exc, correlation_id, operation=operation)
    return execute(transport, event(channel, "manifold", event_type, attrs, correlation_id))


def add_skill(
    transport: EngineTransport,
    skill_name: str,
    rid: str,
    tools: Any,
    url: str = "",
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    """Register a skill with its ruleset id, its tool map and optionally its KRL URL."""
    attrs = {"name": skill_name, "rid": rid, "tools": tools, "url": url}
    return _skills_event(transport, "add_skill", "new_skill_available", attrs, root_address, correlation_id)


def remove_skill(
    transport: EngineTransport,
    skill_name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    return _skills_event(
        transport, "remove_skill", "remove_skill", {"name": skill_name}, root_address, correlation_id
    )


def add_tool_to_skill(
    transport: EngineTransport,
    skill_name: str,
    tool_name: str,
    tool: Any,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    attrs = {"name": skill_name, "tool_name": tool_name, "tool": tool}
    return _skills_event(transport, "add_tool_to_skill", "new_tool_available", attrs, root_address, correlation_id)


def remove_tool_from_skill(
    transport: EngineTransport,
    skill_name: str,
    tool_name: str,
    *,
    root_address: Optional[str] = None,
    correlation_id: Optional[str] = None,
) -> OperationResult:
    attrs = {"name": skill_name, "tool_name": tool_name}
    return _skills_event(transport, "remove_tool_from_skill", "remove_tool", attrs, root_address, correlation_id)
