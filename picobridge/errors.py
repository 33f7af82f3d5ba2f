"""
Failure taxonomy.

InvalidRequest, TransportError and UpstreamHttpError are captured into an
OperationResult by the envelope; the rest are raised to the caller because a
precondition for any further operation is unmet.
"""

from __future__ import annotations

from typing import Any, Optional


class BridgeError(Exception):
    code: str = "BRIDGE_ERROR"


class InvalidRequest(BridgeError):
    code = "INVALID_REQUEST"

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.details = details


class TransportError(BridgeError):
    """The engine could not be reached at all."""

    code = "NETWORK_ERROR"

    def __init__(self, message: str, *, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class UpstreamHttpError(BridgeError):
    """The engine answered with a non-2xx status."""

    code = "HTTP_ERROR"

    def __init__(self, *, method: str, path: str, status_code: int, detail: Any = None):
        super().__init__(f"{method} {path} -> {status_code}: {detail}")
        self.method = method
        self.path = path
        self.status_code = status_code
        self.detail = detail


class NotFoundError(BridgeError, LookupError):
    code = "NOT_FOUND"


class ResolutionError(BridgeError):
    """A named hop of a hierarchy walk could not be completed."""

    code = "RESOLUTION_ERROR"

    def __init__(self, hop: str, message: str, *, address: Optional[str] = None):
        super().__init__(f"hierarchy hop '{hop}' failed: {message}")
        self.hop = hop
        self.address = address


class PollTimeoutError(BridgeError, TimeoutError):
    code = "TIMEOUT_ERROR"

    def __init__(self, message: str, *, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class BootstrapTimeoutError(PollTimeoutError):
    def __init__(self, stage: str, *, attempts: int):
        super().__init__(
            f"bootstrap did not complete within {attempts} attempts (last stage reached: {stage})",
            attempts=attempts,
        )
        self.stage = stage


class PollCancelledError(BridgeError):
    code = "CANCELLED"

    def __init__(self, message: str, *, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class ApplicationError(BridgeError):
    """A 2xx response whose payload embeds an `error` field."""

    code = "APPLICATION_ERROR"

    def __init__(self, error: Any, *, correlation_id: Optional[str] = None):
        super().__init__(f"engine reported an application error: {error}")
        self.error = error
        self.correlation_id = correlation_id
