"""
Idempotent capability (ruleset) installation.

`ensure_installed` only promises that the engine accepted the install event.
The ruleset shows up in the descriptor some time later; callers that need it
right away use `wait_until_installed`.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Callable, Optional

import structlog

from connectors.engine_client import EngineTransport, install_path

from .descriptors import fetch_descriptor
from .polling import poll_until

log = structlog.get_logger(__name__)


def capability_id_from_source(source_location: str) -> str:
    """`file:///.../io.picolabs.manifold_owner.krl` -> `io.picolabs.manifold_owner`."""
    last = source_location.strip().rstrip("/").split("/")[-1]
    if last.endswith(".krl"):
        last = last[: -len(".krl")]
    if not last:
        raise ValueError(f"cannot derive a capability id from {source_location!r}")
    return last


def source_from_path(path: Path) -> str:
    return path.resolve().as_uri()


def is_installed(transport: EngineTransport, address: str, capability_id: str) -> bool:
    return fetch_descriptor(transport, address).has_capability(capability_id)


def ensure_installed(
    transport: EngineTransport,
    address: str,
    capability_id: str,
    source_location: str,
    config: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Install `capability_id` on `address` unless the descriptor already lists it.

    Returns True when an install event was sent, False when it was a no-op.
    Transport and HTTP failures propagate.
    """
    if is_installed(transport, address, capability_id):
        log.debug("install.present", address=address, capability=capability_id)
        return False

    transport.post_json(install_path(address), {"url": source_location, "config": config or {}})
    log.info("install.accepted", address=address, capability=capability_id, source=source_location)
    return True


def wait_until_installed(
    transport: EngineTransport,
    address: str,
    capability_id: str,
    *,
    interval_s: float = 1.0,
    max_attempts: int = 10,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], Any]] = None,
) -> None:
    poll_until(
        lambda: is_installed(transport, address, capability_id),
        interval_s=interval_s,
        max_attempts=max_attempts,
        cancel=cancel,
        sleep=sleep,
        describe=f"{capability_id} installed on {address}",
    )
