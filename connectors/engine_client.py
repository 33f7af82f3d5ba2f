from __future__ import annotations

from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from picobridge.errors import NotFoundError, TransportError, UpstreamHttpError

log = structlog.get_logger(__name__)

UI_RULESET = "io.picolabs.pico-engine-ui"
ROOT_CONTEXT_PATH = "/api/ui-context"


def _seg(value: str) -> str:
    return quote(str(value), safe="")


def _extract_error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text if text else response.reason_phrase
    if isinstance(body, dict) and "error" in body:
        return body["error"]
    return body


def read_json(response: httpx.Response) -> Any:
    """Decode a response body, returning None for empty or non-JSON bodies."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def descriptor_path(address: str) -> str:
    return f"/c/{_seg(address)}/query/{UI_RULESET}/pico"


def name_path(address: str) -> str:
    return f"/c/{_seg(address)}/query/{UI_RULESET}/name"


def query_path(address: str, capability_id: str, operation_name: str) -> str:
    return f"/c/{_seg(address)}/query/{_seg(capability_id)}/{_seg(operation_name)}"


def event_path(address: str, domain: str, event_type: str) -> str:
    return f"/c/{_seg(address)}/event/{_seg(domain)}/{_seg(event_type)}"


def install_path(address: str) -> str:
    return f"/c/{_seg(address)}/event/engine_ui/install/query/{UI_RULESET}/pico"


class EngineTransport:
    """
    Single-request HTTP seam to a pico engine.

    The base URL is fixed at construction, so several engines (or several
    MockTransports in tests) can coexist in one process. Every call is one
    round trip; there are no retries at this layer.
    """

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.Client] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout_s)
        self._owns_client = client is None

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "EngineTransport":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def send(self, method: str, path: str, json: Any = None) -> httpx.Response:
        """Issue one request. Network failures raise TransportError; any status is returned."""
        log.debug("engine.request", method=method, path=path)
        try:
            if json is None:
                return self._client.request(method, path)
            return self._client.request(method, path, json=json)
        except httpx.RequestError as exc:
            log.warning("engine.unreachable", method=method, path=path, error=str(exc))
            raise TransportError(f"{method} {path} failed: {exc}", path=path) from exc

    def request_json(self, method: str, path: str, json: Any = None) -> Any:
        r = self.send(method, path, json=json)
        if not r.is_success:
            raise UpstreamHttpError(
                method=method,
                path=path,
                status_code=r.status_code,
                detail=_extract_error_detail(r),
            )
        return read_json(r)

    def get_json(self, path: str) -> Any:
        return self.request_json("GET", path)

    def post_json(self, path: str, body: Any = None) -> Any:
        return self.request_json("POST", path, json=body if body is not None else {})

    def root_address(self) -> str:
        """ECI of the root pico, from the UI context."""
        data = self.get_json(ROOT_CONTEXT_PATH)
        eci = data.get("eci") if isinstance(data, dict) else None
        if not isinstance(eci, str) or not eci:
            raise NotFoundError(f"{ROOT_CONTEXT_PATH} response carries no eci")
        return eci
