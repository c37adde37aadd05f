from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_TRUTHY = {"1", "true", "yes", "y", "on"}


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    v = env.get(name)
    if v is None:
        return bool(default)
    return v.strip().lower() in _TRUTHY


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, str(default)))
    except ValueError:
        return int(default)


@dataclass(frozen=True)
class RuntimeConfig:
    log_level: str = "INFO"
    # Log every inbound/outbound protocol line at DEBUG.
    log_messages: bool = False
    # 0 disables the limit.
    max_line_bytes: int = 0


def runtime_config_from_env(env: Optional[Mapping[str, str]] = None) -> RuntimeConfig:
    e = os.environ if env is None else env
    log_level = (e.get("MAELNODE_LOG_LEVEL") or "INFO").strip().upper() or "INFO"
    return RuntimeConfig(
        log_level=log_level,
        log_messages=_env_bool(e, "MAELNODE_LOG_MESSAGES", False),
        max_line_bytes=max(0, _env_int(e, "MAELNODE_MAX_LINE_BYTES", 0)),
    )
