from __future__ import annotations

import httpx
import pytest

from conftest import descriptor, name_of, unreachable
from picobridge.errors import NotFoundError, ResolutionError
from picobridge.resolver import (
    HOP_DOMAIN_CHANNEL,
    HOP_ELEVATED_CHANNEL,
    HOP_NAMED_CHILD,
    HOP_NESTED_QUERY,
    HOP_ROOT,
    HierarchyPath,
    resolve,
    resolve_by_name,
    resolve_root,
    resolve_skills_registry,
)

PATH = HierarchyPath(domain_tag="domain")
NESTED = "/c/init1/query/io.picolabs.manifold_owner/getManifoldPicoEci"


def _hierarchy(engine) -> None:
    engine.pico("root-eci", children=["A"])
    engine.names["A"] = "Owner"
    engine.pico("A", channels=[("init1", ["initialization"])])
    engine.queries[("init1", "io.picolabs.manifold_owner", "getManifoldPicoEci")] = "M1"
    engine.pico("M1", channels=[("chan-x", ["domain"])])


def test_resolve_root(engine, transport) -> None:
    assert resolve_root(transport) == "root-eci"
    assert engine.calls == [("GET", "/api/ui-context")]


def test_resolve_root_engine_not_ready(engine, transport) -> None:
    engine.root = None
    with pytest.raises(ResolutionError) as exc:
        resolve_root(transport)
    assert exc.value.hop == HOP_ROOT


def test_resolve_walks_hierarchy_in_order(engine, transport) -> None:
    _hierarchy(engine)

    assert resolve(transport, resolve_root(transport), PATH) == "chan-x"
    assert engine.calls == [
        ("GET", "/api/ui-context"),
        ("GET", descriptor("root-eci")),
        ("GET", name_of("A")),
        ("GET", descriptor("A")),
        ("POST", NESTED),
        ("GET", descriptor("M1")),
    ]


def test_resolve_does_not_cache(engine, transport) -> None:
    _hierarchy(engine)
    resolve(transport, "root-eci", PATH)
    first = len(engine.calls)

    engine.picos["M1"]["channels"] = [{"id": "chan-y", "tags": ["domain"]}]
    assert resolve(transport, "root-eci", PATH) == "chan-y"
    assert len(engine.calls) == 2 * first


def test_missing_owner_names_hop(engine, transport) -> None:
    _hierarchy(engine)
    engine.names["A"] = "Tag Registry"

    with pytest.raises(ResolutionError) as exc:
        resolve(transport, "root-eci", PATH)
    assert exc.value.hop == HOP_NAMED_CHILD
    assert isinstance(exc.value.__cause__, NotFoundError)
    assert "named_child" in str(exc.value)


def test_missing_elevated_channel_names_hop(engine, transport) -> None:
    _hierarchy(engine)
    engine.pico("A", channels=[("other", ["admin"])])

    with pytest.raises(ResolutionError) as exc:
        resolve(transport, "root-eci", PATH)
    assert exc.value.hop == HOP_ELEVATED_CHANNEL
    assert exc.value.address == "A"


@pytest.mark.parametrize(
    "answer",
    [
        pytest.param(httpx.Response(404, json={"error": "rid not installed"}), id="not-installed"),
        pytest.param(None, id="null"),
        pytest.param("", id="empty"),
        pytest.param(unreachable(), id="unreachable"),
    ],
)
def test_nested_query_failure_names_hop(engine, transport, answer) -> None:
    _hierarchy(engine)
    engine.queries[("init1", "io.picolabs.manifold_owner", "getManifoldPicoEci")] = answer

    with pytest.raises(ResolutionError) as exc:
        resolve(transport, "root-eci", PATH)
    assert exc.value.hop == HOP_NESTED_QUERY
    assert engine.paths()[-1] == NESTED


def test_missing_domain_channel_names_hop(engine, transport) -> None:
    _hierarchy(engine)

    with pytest.raises(ResolutionError) as exc:
        resolve(transport, "root-eci")  # default path wants a "manifold" tag
    assert exc.value.hop == HOP_DOMAIN_CHANNEL
    assert exc.value.address == "M1"


def test_root_failure_names_hop_in_resolve(engine, transport) -> None:
    with pytest.raises(ResolutionError) as exc:
        resolve(transport, "root-eci", PATH)
    assert exc.value.hop == HOP_NAMED_CHILD
    assert exc.value.code == "RESOLUTION_ERROR"


def test_resolve_skills_registry(engine, transport) -> None:
    engine.pico("root-eci", children=["owner", "reg"])
    engine.names.update({"owner": "Owner", "reg": "Skills Registry"})
    engine.pico("reg", channels=[("skills-1", ["skills_registry"])])

    assert resolve_skills_registry(transport, "root-eci") == "skills-1"


def test_resolve_by_name(engine, transport) -> None:
    engine.queries[("manifold-chan", "io.picolabs.manifold_pico", "getThings")] = {
        "p1": {"name": "Wallet", "eci": "eci-wallet"},
        "p2": {"name": "Backpack", "eci": "eci-backpack"},
        "p3": {"name": "Backpack", "eci": "eci-other"},
    }
    engine.pico("eci-backpack", channels=[("bp-admin", ["admin"]), ("bp-manifold", ["manifold"])])

    assert resolve_by_name(transport, "manifold-chan", "Backpack") == "bp-manifold"
    assert descriptor("eci-other") not in engine.paths()


def test_resolve_by_name_not_found(engine, transport) -> None:
    engine.queries[("manifold-chan", "io.picolabs.manifold_pico", "getThings")] = {
        "p1": {"name": "Wallet", "eci": "eci-wallet"},
    }

    with pytest.raises(NotFoundError):
        resolve_by_name(transport, "manifold-chan", "Backpack")


def test_resolve_by_name_entry_without_address(engine, transport) -> None:
    engine.queries[("manifold-chan", "io.picolabs.manifold_pico", "getThings")] = {
        "p1": {"name": "Backpack"},
    }

    with pytest.raises(NotFoundError):
        resolve_by_name(transport, "manifold-chan", "Backpack")


def test_transport_root_address(engine, transport) -> None:
    assert transport.root_address() == "root-eci"
    assert engine.calls == [("GET", "/api/ui-context")]


def test_root_context_without_eci(engine) -> None:
    from connectors.engine_client import EngineTransport

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"picos": []})

    with httpx.Client(transport=httpx.MockTransport(handler), base_url="http://engine.test") as client:
        t = EngineTransport("http://engine.test", client=client)
        with pytest.raises(NotFoundError):
            t.root_address()
        with pytest.raises(ResolutionError) as exc:
            resolve_root(t)
    assert exc.value.hop == HOP_ROOT
    assert isinstance(exc.value.__cause__, NotFoundError)
