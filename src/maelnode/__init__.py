# src/maelnode/__init__.py
"""
maelnode: runtime for one node of a line-delimited JSON test harness

The harness spawns one process per node and exchanges newline-delimited JSON
with it over stdin/stdout. This package provides:
  - messages: wire data model (Message / Body / Payload, init payloads)
  - codec: flattening JSON encode/decode of one message per line
  - transport: line framing for input, flushed output sink
  - handshake: the mandatory init / init_ok exchange
  - node: the callback interface node logic implements
  - runtime: the sequential run loop and process entry point

Node algorithms (broadcast, counters, ...) live outside this package and
only depend on `node`, `messages` and `runtime`.
"""

from __future__ import annotations

from maelnode.errors import (
    DecodeError,
    EncodeError,
    InitializationError,
    MissingInit,
    NodeError,
    ProtocolError,
    StepError,
    TransportError,
    UnexpectedFirstMessage,
    format_error_chain,
)
from maelnode.messages import Body, Init, InitOk, InitPayload, Message, Payload
from maelnode.node import BaseNode, Node
from maelnode.runtime import NodeRuntime, RunState, main, run
from maelnode.transport import LineReader, Output

__all__ = [
    "Body",
    "BaseNode",
    "DecodeError",
    "EncodeError",
    "Init",
    "InitOk",
    "InitPayload",
    "InitializationError",
    "LineReader",
    "Message",
    "MissingInit",
    "Node",
    "NodeError",
    "NodeRuntime",
    "Output",
    "Payload",
    "ProtocolError",
    "RunState",
    "StepError",
    "TransportError",
    "UnexpectedFirstMessage",
    "format_error_chain",
    "main",
    "run",
]
