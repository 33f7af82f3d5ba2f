#!/usr/bin/env python3
"""
picobridge CLI: a thin adapter over the core for scripts and operators.

Usage:
    python -m connectors.engine_cli root
    python -m connectors.engine_cli resolve
    python -m connectors.engine_cli query --eci ECI --rid RID --name NAME --args '{"k": 1}'
    python -m connectors.engine_cli event --eci ECI --domain manifold --type create_thing --args '{"name": "x"}'
    python -m connectors.engine_cli install --eci ECI --source ./io.picolabs.manifold_owner.krl
    python -m connectors.engine_cli bootstrap --source ./io.picolabs.manifold_bootstrap.krl
"""
from __future__ import annotations

import argparse
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

from picobridge import envelope, operations
from picobridge.bootstrap import BootstrapOrchestrator
from picobridge.config import BridgeConfig, load_config
from picobridge.errors import BootstrapTimeoutError, BridgeError, ResolutionError
from picobridge.installer import capability_id_from_source, ensure_installed, source_from_path, wait_until_installed
from picobridge.log import setup_logging
from picobridge.polling import wait_for_root
from picobridge.resolver import resolve, resolve_by_name, resolve_root

from .engine_client import EngineTransport


def _read_text(maybe_path: str) -> str:
    p = Path(maybe_path)
    if p.exists():
        return p.read_text(encoding="utf-8")
    return maybe_path


def _read_json(maybe_path_or_json: str) -> dict[str, Any]:
    raw = _read_text(maybe_path_or_json)
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object")
    return parsed


def _source_location(value: str) -> str:
    """Local paths become file:// URLs; anything with a scheme is passed through."""
    if "://" in value:
        return value
    return source_from_path(Path(value))


def _emit(payload: Any, output_format: str) -> None:
    if output_format == "json":
        print(json.dumps(payload, sort_keys=True))
        return
    print(payload)


def _fail(message: str, output_format: str, *, code: int = 1, **extra: Any) -> None:
    payload = {"status": "error", "error": message, "exit_code": code, **extra}
    _emit(payload if output_format == "json" else message, output_format)
    raise SystemExit(code)


def _emit_result(result: envelope.OperationResult, output_format: str) -> None:
    if output_format == "json":
        _emit(result.model_dump(mode="json"), output_format)
    elif result.success:
        _emit(result.data, output_format)
    else:
        _emit(f"{result.error_code}: {result.error_message}", output_format)
    if not result.success:
        raise SystemExit(1)


def _load(args: argparse.Namespace) -> BridgeConfig:
    cfg = load_config(Path(args.config)) if args.config else BridgeConfig()
    cfg = BridgeConfig.from_env(cfg)
    if args.url:
        cfg = replace(cfg, base_url=args.url)
    return cfg


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="picobridge: discover and call pico-engine actors")
    parser.add_argument("--url", default=None, help="Engine base URL (default: PICO_ENGINE_BASE_URL)")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--format", choices=["json", "text"], default="json")
    parser.add_argument("--log-level", default=None)

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_root = sub.add_parser("root", help="Print the root pico's ECI")
    p_root.add_argument("--wait", action="store_true", help="Retry while the engine starts up")

    p_resolve = sub.add_parser("resolve", help="Resolve the Manifold channel from the root")
    p_resolve.add_argument("--root", default=None, help="Root ECI (looked up when omitted)")

    p_rname = sub.add_parser("resolve-name", help="Resolve a named child's domain channel")
    p_rname.add_argument("--parent", required=True)
    p_rname.add_argument("--name", required=True)
    p_rname.add_argument("--rid", default="io.picolabs.manifold_pico")
    p_rname.add_argument("--operation", default="getThings")
    p_rname.add_argument("--tag", default="manifold")

    p_query = sub.add_parser("query", help="Run a KRL query through the envelope")
    p_query.add_argument("--eci", required=True)
    p_query.add_argument("--rid", required=True)
    p_query.add_argument("--name", required=True)
    p_query.add_argument("--args", default="{}", help="JSON object or path to a JSON file")
    p_query.add_argument("--id", default=None, help="Correlation id")

    p_event = sub.add_parser("event", help="Raise a KRL event through the envelope")
    p_event.add_argument("--eci", required=True)
    p_event.add_argument("--domain", required=True)
    p_event.add_argument("--type", required=True)
    p_event.add_argument("--args", default="{}", help="JSON object or path to a JSON file")
    p_event.add_argument("--id", default=None, help="Correlation id")

    p_install = sub.add_parser("install", help="Install a ruleset unless already present")
    p_install.add_argument("--eci", required=True)
    p_install.add_argument("--source", required=True, help="Ruleset file path or URL")
    p_install.add_argument("--rid", default=None, help="Ruleset id (derived from --source when omitted)")
    p_install.add_argument("--wait", action="store_true", help="Wait until the ruleset is listed")

    p_boot = sub.add_parser("bootstrap", help="Install the bootstrap ruleset and wait for completion")
    p_boot.add_argument("--source", required=True, help="Bootstrap ruleset file path or URL")
    p_boot.add_argument("--attempts", type=int, default=None)
    p_boot.add_argument("--interval", type=float, default=None)

    sub.add_parser("things", help="List Manifold things")

    p_skills = sub.add_parser("skills", help="List registered skills")
    p_skills.add_argument("--name", default="")

    p_skill_add = sub.add_parser("skill-add", help="Register a skill in the skills registry")
    p_skill_add.add_argument("--name", required=True)
    p_skill_add.add_argument("--rid", required=True)
    p_skill_add.add_argument("--tools", default="{}", help="Tool map, passed through as given")
    p_skill_add.add_argument("--url", default="", help="KRL source URL of the skill")

    p_skill_rm = sub.add_parser("skill-remove", help="Remove a skill from the skills registry")
    p_skill_rm.add_argument("--name", required=True)

    p_tool_add = sub.add_parser("tool-add", help="Add a tool to a registered skill")
    p_tool_add.add_argument("--skill", required=True)
    p_tool_add.add_argument("--tool", required=True)
    p_tool_add.add_argument("--content", required=True, help="Tool content or path to a file holding it")

    p_tool_rm = sub.add_parser("tool-remove", help="Remove a tool from a registered skill")
    p_tool_rm.add_argument("--skill", required=True)
    p_tool_rm.add_argument("--tool", required=True)

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        cfg = _load(args)
    except (OSError, ValueError) as exc:
        _fail(f"invalid configuration: {exc}", args.format, code=2)
    setup_logging(args.log_level or cfg.log_level, cfg.log_format)

    c = EngineTransport(cfg.base_url, timeout_s=cfg.timeout_s)
    try:
        try:
            if args.cmd == "root":
                if args.wait:
                    eci = wait_for_root(c)
                else:
                    eci = resolve_root(c)
                _emit({"eci": eci} if args.format == "json" else eci, args.format)
            elif args.cmd == "resolve":
                channel = resolve(c, args.root or resolve_root(c), cfg.hierarchy)
                _emit({"eci": channel} if args.format == "json" else channel, args.format)
            elif args.cmd == "resolve-name":
                channel = resolve_by_name(
                    c,
                    args.parent,
                    args.name,
                    capability_id=args.rid,
                    operation_name=args.operation,
                    domain_tag=args.tag,
                )
                _emit({"eci": channel} if args.format == "json" else channel, args.format)
            elif args.cmd == "query":
                env = envelope.query(args.eci, args.rid, args.name, _read_json(args.args), args.id)
                _emit_result(envelope.execute(c, env), args.format)
            elif args.cmd == "event":
                env = envelope.event(args.eci, args.domain, args.type, _read_json(args.args), args.id)
                _emit_result(envelope.execute(c, env), args.format)
            elif args.cmd == "install":
                source = _source_location(args.source)
                rid = args.rid or capability_id_from_source(source)
                sent = ensure_installed(c, args.eci, rid, source)
                if args.wait and sent:
                    wait_until_installed(
                        c,
                        args.eci,
                        rid,
                        interval_s=cfg.polling.interval_s,
                        max_attempts=cfg.polling.max_attempts,
                    )
                _emit({"rid": rid, "installed": sent, "already_present": not sent}, args.format)
            elif args.cmd == "bootstrap":
                orchestrator = BootstrapOrchestrator(
                    c,
                    _source_location(args.source),
                    interval_s=args.interval if args.interval is not None else cfg.polling.interval_s,
                    max_attempts=args.attempts if args.attempts is not None else cfg.polling.max_attempts,
                )
                _emit(orchestrator.run(), args.format)
            elif args.cmd == "things":
                _emit_result(operations.list_things(c), args.format)
            elif args.cmd == "skills":
                _emit_result(operations.get_skills(c, args.name), args.format)
            elif args.cmd == "skill-add":
                _emit_result(operations.add_skill(c, args.name, args.rid, args.tools, args.url), args.format)
            elif args.cmd == "skill-remove":
                _emit_result(operations.remove_skill(c, args.name), args.format)
            elif args.cmd == "tool-add":
                _emit_result(
                    operations.add_tool_to_skill(c, args.skill, args.tool, _read_text(args.content)), args.format
                )
            elif args.cmd == "tool-remove":
                _emit_result(operations.remove_tool_from_skill(c, args.skill, args.tool), args.format)
            else:
                _fail(f"unknown cmd: {args.cmd}", args.format, code=2)
        except SystemExit:
            raise
        except ResolutionError as exc:
            _fail(str(exc), args.format, code=1, hop=exc.hop)
        except BootstrapTimeoutError as exc:
            _fail(str(exc), args.format, code=1, stage=exc.stage, attempts=exc.attempts)
        except BridgeError as exc:
            _fail(str(exc), args.format, code=1, error_code=exc.code)
        except ValueError as exc:
            _fail(str(exc), args.format, code=2)
    finally:
        c.close()


if __name__ == "__main__":
    main()
