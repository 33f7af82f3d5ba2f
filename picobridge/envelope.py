"""
Uniform operation envelope.

One request shape covers both engine operation styles:

- query: POST /c/{eci}/query/{rid}/{name}   (synchronous read)
- event: POST /c/{eci}/event/{domain}/{type} (asynchronous write)

`execute` never raises. Malformed envelopes come back as INVALID_REQUEST
before any network call; transport and HTTP failures come back as
NETWORK_ERROR / HTTP_ERROR. A 2xx response whose body carries an `error`
field is still `success=True` here; use `application_error` or
`raise_for_application_error` when a business check needs it.
"""

from __future__ import annotations

import json
import secrets
import time
from typing import Any, Literal, Mapping, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from connectors.engine_client import EngineTransport, event_path, query_path, read_json

from .errors import ApplicationError, InvalidRequest, TransportError, UpstreamHttpError

log = structlog.get_logger(__name__)

QUERY = "query"
EVENT = "event"


def new_correlation_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class OperationSelector(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    capability_id: Optional[str] = Field(None, alias="capabilityId", min_length=1)
    operation_name: Optional[str] = Field(None, alias="operationName", min_length=1)
    domain: Optional[str] = Field(None, min_length=1)
    event_type: Optional[str] = Field(None, alias="eventType", min_length=1)


class OperationEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Any caller value is accepted; non-string or empty ids are replaced in `execute`.
    correlation_id: Any = Field(None, alias="correlationId")
    target_address: str = Field(..., alias="targetAddress", min_length=1)
    operation_kind: Literal["query", "event"] = Field(..., alias="operationKind")
    selector: OperationSelector = Field(default_factory=OperationSelector, alias="operationSelector")
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments")
    @classmethod
    def _json_serializable(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"arguments must be JSON serializable: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _selector_matches_kind(self) -> "OperationEnvelope":
        s = self.selector
        if self.operation_kind == QUERY and not (s.capability_id and s.operation_name):
            raise ValueError("query requires selector.capability_id and selector.operation_name")
        if self.operation_kind == EVENT and not (s.domain and s.event_type):
            raise ValueError("event requires selector.domain and selector.event_type")
        return self

    def selector_fields(self) -> dict[str, str]:
        s = self.selector
        if self.operation_kind == QUERY:
            return {"capability_id": s.capability_id, "operation_name": s.operation_name}
        return {"domain": s.domain, "event_type": s.event_type}

    def path(self) -> str:
        s = self.selector
        if self.operation_kind == QUERY:
            return query_path(self.target_address, s.capability_id, s.operation_name)
        return event_path(self.target_address, s.domain, s.event_type)


class OperationResult(BaseModel):
    correlation_id: str
    success: bool
    data: Any = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    error_details: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


def query(
    target_address: str,
    capability_id: str,
    operation_name: str,
    arguments: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> dict[str, Any]:
    """Build a raw query envelope; validation happens in `execute`."""
    return {
        "correlation_id": correlation_id,
        "target_address": target_address,
        "operation_kind": QUERY,
        "selector": {"capability_id": capability_id, "operation_name": operation_name},
        "arguments": arguments if arguments is not None else {},
    }


def event(
    target_address: str,
    domain: str,
    event_type: str,
    arguments: Optional[dict[str, Any]] = None,
    correlation_id: Optional[str] = None,
) -> dict[str, Any]:
    return {
        "correlation_id": correlation_id,
        "target_address": target_address,
        "operation_kind": EVENT,
        "selector": {"domain": domain, "event_type": event_type},
        "arguments": arguments if arguments is not None else {},
    }


def _raw_field(raw: Any, *names: str) -> Any:
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if isinstance(raw, Mapping):
        for n in names:
            if n in raw:
                return raw[n]
    return None


def _correlation_id(value: Any) -> str:
    if isinstance(value, str) and value:
        return value
    return new_correlation_id()


def _invalid(raw: Any, message: str, details: Any) -> OperationResult:
    kind = _raw_field(raw, "operation_kind", "operationKind")
    target = _raw_field(raw, "target_address", "targetAddress")
    result = OperationResult(
        correlation_id=_correlation_id(_raw_field(raw, "correlation_id", "correlationId")),
        success=False,
        error_code=InvalidRequest.code,
        error_message=message,
        error_details=details,
        metadata={
            "operation_kind": kind if isinstance(kind, str) else None,
            "target_address": target if isinstance(target, str) else None,
        },
    )
    log.info("envelope.invalid", correlation_id=result.correlation_id, error=message)
    return result


def validate_envelope(raw: Union[OperationEnvelope, Mapping[str, Any]]) -> OperationEnvelope:
    """Return a validated envelope or raise InvalidRequest (carrying pydantic's error list)."""
    if isinstance(raw, OperationEnvelope):
        raw = raw.model_dump()
    if not isinstance(raw, Mapping):
        raise InvalidRequest("request must be an object")
    try:
        return OperationEnvelope.model_validate(dict(raw))
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg", exc))
        raise InvalidRequest(message, details=errors) from exc


def execute(transport: EngineTransport, envelope: Union[OperationEnvelope, Mapping[str, Any]]) -> OperationResult:
    """Validate, route and run one operation, always returning an OperationResult."""
    try:
        env = validate_envelope(envelope)
    except InvalidRequest as exc:
        return _invalid(envelope, str(exc), exc.details)

    correlation_id = _correlation_id(env.correlation_id)
    meta: dict[str, Any] = {
        "operation_kind": env.operation_kind,
        "target_address": env.target_address,
        **env.selector_fields(),
    }
    path = env.path()

    try:
        resp = transport.send("POST", path, json=env.arguments)
    except TransportError as exc:
        log.warning("envelope.network_error", correlation_id=correlation_id, path=path, error=str(exc))
        return OperationResult(
            correlation_id=correlation_id,
            success=False,
            error_code=TransportError.code,
            error_message=str(exc),
            error_details={"path": path},
            metadata=meta,
        )

    meta["transport_status"] = resp.status_code
    payload = read_json(resp)
    if not resp.is_success:
        log.warning("envelope.http_error", correlation_id=correlation_id, path=path, status=resp.status_code)
        return OperationResult(
            correlation_id=correlation_id,
            success=False,
            error_code=UpstreamHttpError.code,
            error_message=f"Upstream returned HTTP {resp.status_code}",
            error_details=payload if payload is not None else resp.text or None,
            metadata=meta,
        )

    log.debug("envelope.ok", correlation_id=correlation_id, path=path, status=resp.status_code)
    return OperationResult(correlation_id=correlation_id, success=True, data=payload, metadata=meta)


def application_error(result: OperationResult) -> Any:
    """The `error` embedded in a successful result's data, or None."""
    if result.success and isinstance(result.data, dict):
        return result.data.get("error") or None
    return None


def raise_for_application_error(result: OperationResult) -> OperationResult:
    """
    Raise ApplicationError if a successful result embeds an `error` in its data.

    Failed results are returned untouched; their error_code already says why.
    """
    err = application_error(result)
    if err is not None:
        raise ApplicationError(err, correlation_id=result.correlation_id)
    return result
