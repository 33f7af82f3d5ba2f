"""
Manifold bootstrap orchestration.

Installing the bootstrap ruleset on the root pico makes the engine create the
tag registry and owner picos on its own schedule. There is no notification
when that finishes, so completion is detected by polling:

    NOT_STARTED -> INSTALLING -> AWAITING_CHANNEL -> AWAITING_STATUS -> COMPLETE
                                      (any non-terminal) -> TIMED_OUT

The channel search and the status query share one attempt budget. A timeout
reports the last stage reached, which tells an operator whether the bootstrap
channel never appeared or the owner pico was never created.
"""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Optional

import structlog

from connectors.engine_client import EngineTransport, query_path

from .descriptors import fetch_descriptor
from .errors import BootstrapTimeoutError, BridgeError, PollCancelledError, PollTimeoutError
from .installer import capability_id_from_source, ensure_installed
from .polling import poll_until
from .resolver import resolve_root

log = structlog.get_logger(__name__)

BOOTSTRAP_CAPABILITY = "io.picolabs.manifold_bootstrap"
BOOTSTRAP_TAG = "bootstrap"
STATUS_OPERATION = "getBootstrapStatus"
OWNER_FIELD = "owner_eci"


class BootstrapStage(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    INSTALLING = "INSTALLING"
    AWAITING_CHANNEL = "AWAITING_CHANNEL"
    AWAITING_STATUS = "AWAITING_STATUS"
    COMPLETE = "COMPLETE"
    TIMED_OUT = "TIMED_OUT"


class BootstrapOrchestrator:
    """Drive one bootstrap run. Instances are single-use."""

    def __init__(
        self,
        transport: EngineTransport,
        source_location: str,
        *,
        capability_id: Optional[str] = None,
        interval_s: float = 1.0,
        max_attempts: int = 30,
        status_field: str = OWNER_FIELD,
        cancel: Optional[threading.Event] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        self.transport = transport
        self.source_location = source_location
        self.capability_id = capability_id or capability_id_from_source(source_location)
        self.interval_s = interval_s
        self.max_attempts = max_attempts
        self.status_field = status_field
        self.cancel = cancel
        self.sleep = sleep

        self.stage = BootstrapStage.NOT_STARTED
        self.root_address: Optional[str] = None
        self.channel: Optional[str] = None
        self.attempts = 0

    def _set_stage(self, stage: BootstrapStage) -> None:
        log.info("bootstrap.stage", previous=self.stage.value, stage=stage.value, attempts=self.attempts)
        self.stage = stage

    def _find_channel(self) -> Optional[str]:
        ch = fetch_descriptor(self.transport, self.root_address).channel_with_tag(BOOTSTRAP_TAG)
        return ch.address if ch else None

    def _status(self) -> Any:
        # The engine serves KRL queries on GET as well as POST; this one takes no arguments.
        return self.transport.get_json(query_path(self.channel, self.capability_id, STATUS_OPERATION))

    def _attempt(self) -> Optional[dict[str, Any]]:
        self.attempts += 1
        try:
            if self.stage is BootstrapStage.AWAITING_CHANNEL:
                self.channel = self._find_channel()
                if self.channel is None:
                    return None
                log.info("bootstrap.channel_found", channel=self.channel)
                self._set_stage(BootstrapStage.AWAITING_STATUS)

            status = self._status()
        except BridgeError as exc:
            # The engine is busy creating picos; transient failures use up an attempt.
            log.debug("bootstrap.attempt_failed", stage=self.stage.value, attempt=self.attempts, error=str(exc))
            return None

        if isinstance(status, dict) and status.get(self.status_field):
            return status
        return None

    def run(self, root_address: Optional[str] = None) -> dict[str, Any]:
        """
        Run the bootstrap and return the final status payload.

        Raises BootstrapTimeoutError when the attempt budget runs out and
        PollCancelledError when `cancel` is set; the stage is left where it
        stopped. Install failures (TransportError / UpstreamHttpError)
        propagate as is.
        """
        if self.stage is not BootstrapStage.NOT_STARTED:
            raise RuntimeError(f"bootstrap already ran (stage {self.stage.value})")
        if self.cancel is not None and self.cancel.is_set():
            raise PollCancelledError("bootstrap cancelled before start", attempts=0)

        self.root_address = root_address or resolve_root(self.transport)
        self._set_stage(BootstrapStage.INSTALLING)
        ensure_installed(self.transport, self.root_address, self.capability_id, self.source_location)
        self._set_stage(BootstrapStage.AWAITING_CHANNEL)

        try:
            status = poll_until(
                self._attempt,
                interval_s=self.interval_s,
                max_attempts=self.max_attempts,
                cancel=self.cancel,
                sleep=self.sleep,
                describe="bootstrap completion",
            )
        except PollTimeoutError as exc:
            reached = self.stage
            self._set_stage(BootstrapStage.TIMED_OUT)
            raise BootstrapTimeoutError(reached.value, attempts=exc.attempts) from exc

        self._set_stage(BootstrapStage.COMPLETE)
        return status


def run_bootstrap(transport: EngineTransport, source_location: str, **kwargs: Any) -> dict[str, Any]:
    root_address = kwargs.pop("root_address", None)
    return BootstrapOrchestrator(transport, source_location, **kwargs).run(root_address)
