from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Pattern
import json
import os
import re

import yaml

DEFAULT_HEADERS = {
    "Accept": "*/*",
    "Connection": "Keep-Alive",
    "Content-Type": "application/json",
    "User-Agent": "apiping",
}

DEFAULT_METHODS = '["GET","POST"]'

# config key -> env var
ENV_KEYS = {
    "input": "APING_INPUT",
    "base": "APING_BASE_URL",
    "header": "APING_HEADER",
    "worker": "APING_WORKER",
    "timeout": "APING_TIMEOUT",
    "loop": "APING_LOOP",
    "response": "APING_RESPONSE",
    "methods": "APING_METHODS",
    "filter": "APING_FILTER",
    "threshold": "APING_THRESHOLD",
    "out": "APING_OUT",
}

_BOOL_TRUE = {"true", "1", "yes", "y", "on"}
_BOOL_FALSE = {"false", "0", "no", "n", "off"}


class ConfigError(ValueError):
    """Invalid run configuration. Fatal, raised before anything is dispatched."""


def _coerce_scalar(v):
    s = str(v).strip()
    low = s.lower()

    if low in _BOOL_TRUE:
        return True
    if low in _BOOL_FALSE:
        return False

    if re.fullmatch(r"[+-]?\d+", s):
        return int(s)

    if re.fullmatch(r"[+-]?\d+\.\d+", s):
        return float(s)

    return s


@dataclass
class RunConfig:
    input: str = ""
    base_url: str = ""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType(dict(DEFAULT_HEADERS)))
    workers: int = 1
    timeout: float = 5.0
    rounds: int = 1
    capture_response: bool = False
    methods: List[str] = field(default_factory=lambda: ["GET", "POST"])
    path_filter: Optional[Pattern] = None
    threshold_ms: int = -1
    out: str = "console"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RunConfig":
        return cls(
            input=str(raw.get("input") or ""),
            base_url=str(raw.get("base") or ""),
            headers=parse_headers(raw.get("header", "{}")),
            workers=_positive_int(raw.get("worker", 1), "worker"),
            timeout=_positive_number(raw.get("timeout", 5), "timeout"),
            rounds=_positive_int(raw.get("loop", 1), "loop"),
            capture_response=_flag(raw.get("response", False)),
            methods=parse_methods(raw.get("methods", DEFAULT_METHODS)),
            path_filter=parse_filter(raw.get("filter") or ""),
            threshold_ms=_int(raw.get("threshold", -1), "threshold"),
            out=str(raw.get("out") or "console"),
        )


def parse_headers(value) -> Mapping[str, str]:
    """Merge custom headers (JSON object or mapping) over the defaults; read-only result."""
    if isinstance(value, Mapping):
        custom = dict(value)
    else:
        try:
            custom = json.loads(value or "{}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid header JSON {value!r}: {e}") from e
    if not isinstance(custom, dict) or not all(isinstance(v, str) for v in custom.values()):
        raise ConfigError(f"Header must be a JSON object of strings, got {value!r}")
    # values may carry any text, names go on the wire as ascii
    for k in custom:
        if not str(k).isascii() or not str(k).strip():
            raise ConfigError(f"Header name {k!r} must be non-empty ascii")

    headers = dict(DEFAULT_HEADERS)
    headers.update({str(k): v for k, v in custom.items()})
    return MappingProxyType(headers)


def parse_methods(value) -> List[str]:
    if isinstance(value, (list, tuple)):
        methods = list(value)
    else:
        try:
            methods = json.loads(value)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid methods JSON {value!r}: {e}") from e
    if not isinstance(methods, list) or not methods or not all(isinstance(m, str) for m in methods):
        raise ConfigError(f"Methods must be a non-empty JSON array of strings, got {value!r}")
    return [m.upper() for m in methods]


def parse_filter(pattern: str) -> Optional[Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(str(pattern))
    except re.error as e:
        raise ConfigError(f"Invalid filter pattern {pattern!r}: {e}") from e


def _flag(value) -> bool:
    coerced = _coerce_scalar(value) if isinstance(value, str) else value
    if not isinstance(coerced, bool):
        raise ConfigError(f"Expected a boolean, got {value!r}")
    return coerced


def _int(value, name: str) -> int:
    coerced = _coerce_scalar(value) if isinstance(value, str) else value
    if isinstance(coerced, bool) or not isinstance(coerced, int):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    return coerced


def _positive_int(value, name: str) -> int:
    v = _int(value, name)
    if v < 1:
        raise ConfigError(f"{name} must be a positive integer, got {value!r}")
    return v


def _positive_number(value, name: str) -> float:
    coerced = _coerce_scalar(value) if isinstance(value, str) else value
    if isinstance(coerced, bool) or not isinstance(coerced, (int, float)) or coerced <= 0:
        raise ConfigError(f"{name} must be a positive number, got {value!r}")
    return float(coerced)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> RunConfig:
    environ = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}
    for key, env in ENV_KEYS.items():
        value = environ.get(env)
        if value is not None and value.strip() != "":
            raw[key] = value.strip()
    return RunConfig.from_mapping(raw)


def config_from_yaml(path: str) -> RunConfig:
    """Load a plan file; the run settings live under its "run" section (or at top level)."""
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"YAML file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Plan file {p} must contain a mapping")
    return RunConfig.from_mapping(data.get("run") or data)
