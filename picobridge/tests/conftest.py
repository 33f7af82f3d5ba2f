"""
picobridge test configuration: an in-process fake pico engine on httpx.MockTransport.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from connectors.engine_client import UI_RULESET, EngineTransport

BASE_URL = "http://engine.test"


def _channel(cid: str, tags, name: Optional[str] = None) -> dict[str, Any]:
    out: dict[str, Any] = {"id": cid, "tags": list(tags)}
    if name:
        out["name"] = name
    return out


class FakeEngine:
    """
    Routes pico-engine URLs to in-memory picos and records every call.

    Query/event handlers may be plain values, callables taking the decoded
    JSON body, an httpx.Response, or an exception instance to raise.
    """

    def __init__(self, root: Optional[str] = "root-eci"):
        self.root = root
        self.picos: dict[str, dict[str, Any]] = {}
        self.names: dict[str, Any] = {}
        self.queries: dict[tuple[str, str, str], Any] = {}
        self.events: dict[tuple[str, str, str], Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[Any] = []
        self.installs: list[tuple[str, dict[str, Any]]] = []
        self.install_applies = True

    # --- setup helpers ---
    def pico(self, eci: str, *, children=(), channels=(), rulesets=(), name: Optional[str] = None) -> None:
        self.picos[eci] = {
            "children": list(children),
            "channels": [_channel(*entry) for entry in channels],
            "rulesets": [{"rid": rid} for rid in rulesets],
        }
        if name is not None:
            self.names[eci] = name

    def add_channel(self, eci: str, cid: str, tags) -> None:
        self.picos[eci]["channels"].append({"id": cid, "tags": list(tags)})

    # --- routing ---
    def _answer(self, request: httpx.Request, value: Any, body: Any) -> httpx.Response:
        if callable(value) and not isinstance(value, httpx.Response):
            value = value(body)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, httpx.Response):
            return value
        return httpx.Response(200, json=value, request=request)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        body = json.loads(request.content) if request.content else None
        self.bodies.append(body)

        if path == "/api/ui-context":
            if self.root is None:
                return httpx.Response(503, text="starting", request=request)
            return httpx.Response(200, json={"eci": self.root}, request=request)

        parts = path.strip("/").split("/")
        if len(parts) < 5 or parts[0] != "c":
            return httpx.Response(404, json={"error": "no route"}, request=request)
        eci = parts[1]

        if parts[2:] == ["event", "engine_ui", "install", "query", UI_RULESET, "pico"]:
            self.installs.append((eci, body))
            if self.install_applies and eci in self.picos:
                rid = body["url"].rstrip("/").split("/")[-1].replace(".krl", "")
                self.picos[eci]["rulesets"].append({"rid": rid})
            return httpx.Response(200, json={}, request=request)

        if parts[2] == "query" and parts[3] == UI_RULESET:
            if parts[4] == "pico":
                if eci not in self.picos:
                    return httpx.Response(400, json={"error": f"ECI not found {eci}"}, request=request)
                return httpx.Response(200, json=self.picos[eci], request=request)
            if parts[4] == "name":
                if eci not in self.names:
                    return httpx.Response(400, json={"error": f"ECI not found {eci}"}, request=request)
                return self._answer(request, self.names[eci], body)

        key = (eci, parts[3], parts[4])
        table = self.queries if parts[2] == "query" else self.events
        if key not in table:
            return httpx.Response(404, json={"error": f"no handler for {key}"}, request=request)
        return self._answer(request, table[key], body)

    def transport(self) -> EngineTransport:
        client = httpx.Client(transport=httpx.MockTransport(self.handler), base_url=BASE_URL)
        return EngineTransport(BASE_URL, client=client)

    def paths(self) -> list[str]:
        return [p for _, p in self.calls]


def descriptor(eci: str) -> str:
    return f"/c/{eci}/query/{UI_RULESET}/pico"


def name_of(eci: str) -> str:
    return f"/c/{eci}/query/{UI_RULESET}/name"


def unreachable(message: str = "connection refused") -> Callable[[Any], Any]:
    def _raise(_body: Any) -> Any:
        raise httpx.ConnectError(message)

    return _raise


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def transport(engine: FakeEngine):
    with httpx.Client(transport=httpx.MockTransport(engine.handler), base_url=BASE_URL) as client:
        yield EngineTransport(BASE_URL, client=client)


class SleepRecorder:
    def __init__(self):
        self.waits: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()
