"""
picobridge configuration: environment-driven defaults plus an optional YAML file.

Only the adapters (CLI, tool servers) read this; core functions take the
transport and parameters they need as arguments.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from .resolver import HierarchyPath

DEFAULT_BASE_URL = "http://localhost:3000"


@dataclass(frozen=True)
class PollingConfig:
    interval_s: float = 1.0
    max_attempts: int = 30


@dataclass(frozen=True)
class BridgeConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 30.0
    polling: PollingConfig = field(default_factory=PollingConfig)
    hierarchy: HierarchyPath = field(default_factory=HierarchyPath)
    log_level: str = "INFO"
    log_format: str = "console"

    @classmethod
    def from_env(cls, base: Optional["BridgeConfig"] = None) -> "BridgeConfig":
        base = base or cls()
        return cls(
            base_url=os.environ.get("PICO_ENGINE_BASE_URL", base.base_url),
            timeout_s=float(os.environ.get("PICOBRIDGE_TIMEOUT_S", base.timeout_s)),
            polling=PollingConfig(
                interval_s=float(os.environ.get("PICOBRIDGE_POLL_INTERVAL_S", base.polling.interval_s)),
                max_attempts=int(os.environ.get("PICOBRIDGE_POLL_ATTEMPTS", base.polling.max_attempts)),
            ),
            hierarchy=base.hierarchy,
            log_level=os.environ.get("PICOBRIDGE_LOG_LEVEL", base.log_level),
            log_format=os.environ.get("PICOBRIDGE_LOG_FORMAT", base.log_format),
        )


def _mapping(raw: Any, key: str) -> dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def load_config(path: Path) -> BridgeConfig:
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("picobridge config must be a mapping")

    polling = _mapping(raw, "polling")
    hierarchy = _mapping(raw, "hierarchy")
    known = set(HierarchyPath.__dataclass_fields__)
    unknown = set(hierarchy) - known
    if unknown:
        raise ValueError(f"unknown hierarchy keys: {sorted(unknown)}")

    cfg = BridgeConfig(
        base_url=str(raw.get("base_url", DEFAULT_BASE_URL)).strip(),
        timeout_s=float(raw.get("timeout_s", 30.0)),
        polling=PollingConfig(
            interval_s=float(polling.get("interval_s", 1.0)),
            max_attempts=int(polling.get("max_attempts", 30)),
        ),
        hierarchy=HierarchyPath(**{k: str(v) for k, v in hierarchy.items()}),
        log_level=str(raw.get("log_level", "INFO")),
        log_format=str(raw.get("log_format", "console")),
    )
    if not cfg.base_url:
        raise ValueError("`base_url` must not be empty")
    if cfg.polling.max_attempts < 1:
        raise ValueError("`polling.max_attempts` must be >= 1")
    return cfg
