from __future__ import annotations

import json
import logging
import sys
import time
from typing import Any, Dict, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging for JSONL output on stderr.

    stdout carries protocol lines, so nothing here may ever write to it.
    Safe to call multiple times.
    """
    lvl = getattr(logging, (level or "INFO").strip().upper(), logging.INFO)

    root = logging.getLogger("maelnode")
    if getattr(root, "_maelnode_configured", False):  # type: ignore[attr-defined]
        root.setLevel(lvl)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(lvl)
    root.propagate = False
    setattr(root, "_maelnode_configured", True)  # type: ignore[attr-defined]


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Emit a single JSONL log event."""
    if not logger.isEnabledFor(level):
        return
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    try:
        logger.log(level, json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.log(level, " ".join(parts))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(f"maelnode.{name}" if name else "maelnode")
