# src/maelnode/errors.py
"""
Error taxonomy for the node runtime.

Every error raised by the runtime is a NodeError carrying:
  - code:  stable machine-readable reason
  - phase: where it happened (handshake | decode | encode | construction | step | io)

Causes are chained with `raise ... from`, and format_error_chain() renders
the chain for the process boundary.
"""

from __future__ import annotations

from typing import List, Optional


class NodeError(RuntimeError):
    default_code = "node_error"
    default_phase = "runtime"

    def __init__(self, msg: str, *, code: Optional[str] = None, phase: Optional[str] = None) -> None:
        super().__init__(msg)
        self.code = code or self.default_code
        self.phase = phase or self.default_phase

    def describe(self) -> str:
        return f"[{self.phase}] {self.code}: {self.args[0] if self.args else ''}"


class DecodeError(NodeError):
    """A line is not valid JSON or does not match the expected shape."""

    default_code = "invalid_json"
    default_phase = "decode"

    def __init__(
        self,
        code: str,
        msg: str,
        *,
        line_no: Optional[int] = None,
        line: Optional[str] = None,
        phase: Optional[str] = None,
    ) -> None:
        if line_no is not None:
            msg = f"line {line_no}: {msg}"
        super().__init__(msg, code=code, phase=phase)
        self.line_no = line_no
        self.line = line


class EncodeError(NodeError):
    default_code = "encode_failed"
    default_phase = "encode"

    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg, code=code)


class ProtocolError(NodeError):
    default_code = "protocol_error"


class MissingInit(ProtocolError):
    """Input ended before the init message arrived."""

    default_code = "missing_init"
    default_phase = "handshake"


class UnexpectedFirstMessage(ProtocolError):
    """The first message was not an init."""

    default_code = "unexpected_first_message"
    default_phase = "handshake"

    def __init__(self, msg: str, *, msg_type: Optional[str] = None) -> None:
        super().__init__(msg)
        self.msg_type = msg_type


class InitializationError(NodeError):
    default_code = "init_failed"
    default_phase = "construction"


class StepError(NodeError):
    default_code = "step_failed"
    default_phase = "step"

    def __init__(self, msg: str, *, line_no: Optional[int] = None, msg_type: Optional[str] = None) -> None:
        super().__init__(msg)
        self.line_no = line_no
        self.msg_type = msg_type


class TransportError(NodeError):
    default_code = "io_failed"
    default_phase = "io"


def error_chain(exc: BaseException) -> List[BaseException]:
    out: List[BaseException] = []
    cur: Optional[BaseException] = exc
    while cur is not None and cur not in out:
        out.append(cur)
        cur = cur.__cause__ or (None if cur.__suppress_context__ else cur.__context__)
    return out


def format_error_chain(exc: BaseException) -> str:
    """Render an exception and its causes, outermost first."""
    parts = []
    for e in error_chain(exc):
        if isinstance(e, NodeError):
            parts.append(e.describe())
        else:
            parts.append(f"{type(e).__name__}: {e}")
    return "\ncaused by: ".join(parts)
