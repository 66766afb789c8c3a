# mutators.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from apirule import Handler, Rule
from errors import ConfigError

COOKIE = "cookie"
HEADER = "header"


@dataclass(frozen=True)
class CookieMutator:
    cookies: Dict[str, str] = field(default_factory=dict)

    def has_cookies(self) -> bool:
        return len(self.cookies) > 0

    def to_string(self) -> str:
        """Render as a Cookie header value. Names are sorted so output is stable."""
        return "; ".join(f"{k}={v}" for k, v in sorted(self.cookies.items()))


@dataclass(frozen=True)
class HeaderMutator:
    headers: Dict[str, str] = field(default_factory=dict)

    def has_headers(self) -> bool:
        return len(self.headers) > 0


def _find(rule: Rule, handler: str) -> Optional[Handler]:
    for m in rule.mutators:
        if m.name == handler:
            return m
    return None


def _decode_config(m: Handler) -> Dict[str, Any]:
    raw = m.config
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ConfigError(f"{m.name} mutator config is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{m.name} mutator config must be an object, got {type(raw).__name__}")
    return raw


def _string_map(m: Handler, cfg: Dict[str, Any], key: str) -> Dict[str, str]:
    values = cfg.get(key)
    if values is None:
        return {}
    if not isinstance(values, dict):
        raise ConfigError(f"{m.name} mutator '{key}' must be a mapping of strings")
    for k, v in values.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ConfigError(f"{m.name} mutator '{key}' has a non-string entry {k!r}: {v!r}")
    return dict(values)


def cookie_mutator(rule: Rule) -> CookieMutator:
    m = _find(rule, COOKIE)
    if m is None:
        return CookieMutator()
    return CookieMutator(cookies=_string_map(m, _decode_config(m), "cookies"))


def header_mutator(rule: Rule) -> HeaderMutator:
    m = _find(rule, HEADER)
    if m is None:
        return HeaderMutator()
    return HeaderMutator(headers=_string_map(m, _decode_config(m), "headers"))
