"""
maelnode: Line transport

The harness speaks newline-delimited JSON over the process's stdin/stdout:
  - LineReader: framing for the input stream (one message per line)
  - Output:     the output sink handed to node logic; one flushed line per message

Both accept text or binary streams. Binary streams are UTF-8.
"""

from __future__ import annotations

import io
import logging
from typing import IO, Any, Iterator, Optional, Tuple

from maelnode.codec import encode_message
from maelnode.errors import DecodeError, ProtocolError, TransportError
from maelnode.messages import Body, Message, MsgId, NodeId
from maelnode.node_logging import get_logger, log_event

_LOG = get_logger("transport")


def _is_text(stream: Any) -> bool:
    return isinstance(stream, io.TextIOBase)


# ---------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------


class LineReader:
    """Yields (line_no, text) for each non-blank input line, in order.

    line_no is 1-based and counts blank lines too, so it points at the
    physical line in the harness's stream.
    """

    def __init__(self, stream: IO[Any], *, max_line_bytes: int = 0) -> None:
        self._stream = stream
        self._max_line_bytes = max(0, int(max_line_bytes))
        self._eof = False
        self.line_no = 0

    @property
    def at_eof(self) -> bool:
        return self._eof

    def _readline(self) -> Any:
        try:
            return self._stream.readline()
        except OSError as e:
            raise TransportError(f"read failed: {e}", code="read_failed") from e

    def next_line(self) -> Optional[Tuple[int, str]]:
        """Return the next non-blank line, or None at end of input."""
        while not self._eof:
            raw = self._readline()
            if not raw:
                self._eof = True
                return None
            self.line_no += 1

            if isinstance(raw, bytes):
                size = len(raw.rstrip(b"\r\n"))
            else:
                size = len(raw.rstrip("\r\n").encode("utf-8"))
            if self._max_line_bytes and size > self._max_line_bytes:
                raise DecodeError(
                    "line_too_long",
                    f"line is {size} bytes, limit is {self._max_line_bytes}",
                    line_no=self.line_no,
                )

            if isinstance(raw, bytes):
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise DecodeError("invalid_utf8", f"invalid utf-8: {e}", line_no=self.line_no) from e
            else:
                text = raw

            text = text.rstrip("\r\n")
            if not text.strip():
                continue
            return self.line_no, text
        return None

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        while True:
            item = self.next_line()
            if item is None:
                return
            yield item


# ---------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------


class Output:
    """Output sink shared by the handshake and node logic.

    Owns msg_id allocation: ids are unique per process and strictly
    increasing, starting at 0 (the init_ok reply).
    Node logic receives it per step call and must not keep it around.
    """

    def __init__(self, stream: IO[Any], *, log_messages: bool = False) -> None:
        self._stream = stream
        self._text = _is_text(stream)
        self._log_messages = bool(log_messages)
        self._next_id: MsgId = 0
        self._node_id: Optional[NodeId] = None
        self.messages_written = 0

    @property
    def node_id(self) -> Optional[NodeId]:
        return self._node_id

    def bind(self, node_id: NodeId) -> None:
        if self._node_id is not None and self._node_id != node_id:
            raise ProtocolError(f"node id already bound: {self._node_id} != {node_id}")
        self._node_id = node_id

    def next_msg_id(self) -> MsgId:
        mid = self._next_id
        self._next_id += 1
        return mid

    def write(self, msg: Message[Any]) -> None:
        line = encode_message(msg) + "\n"
        try:
            if self._text:
                self._stream.write(line)
            else:
                self._stream.write(line.encode("utf-8"))
            self._stream.flush()
        except OSError as e:
            raise TransportError(f"write failed: {e}", code="write_failed") from e

        self.messages_written += 1
        if self._log_messages:
            log_event(_LOG, "message_out", level=logging.DEBUG, line=line[:-1])

    def send(self, dest: NodeId, payload: Any, *, in_reply_to: Optional[MsgId] = None) -> Message[Any]:
        if self._node_id is None:
            raise ProtocolError("cannot send before the node id is bound")
        msg = Message(
            src=self._node_id,
            dst=dest,
            body=Body(id=self.next_msg_id(), in_reply_to=in_reply_to, payload=payload),
        )
        self.write(msg)
        return msg

    def reply(self, request: Message[Any], payload: Any) -> Message[Any]:
        msg = request.into_reply(self.next_msg_id(), payload)
        self.write(msg)
        return msg
