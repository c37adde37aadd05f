# src/maelnode/handshake.py
"""
maelnode: Init handshake

Purpose:
  - Assign this node its identity BEFORE any node logic runs
  - Enforce strict invariants:
      * the first message on the input stream must be `init`
      * exactly one `init_ok` is written, with msg_id 0, before anything else

Integration pattern:
  read first line
  decode envelope
  require type == "init"
  reply init_ok (src/dest swapped, in_reply_to = init msg_id)
  hand Init to the node constructor

Failures are fatal: there is no retry within one process lifetime.
"""

from __future__ import annotations

import logging
from typing import IO, Any, Tuple, Union

from maelnode.codec import decode_payload, loads_json, split_envelope
from maelnode.errors import DecodeError, MissingInit, UnexpectedFirstMessage
from maelnode.messages import Body, Init, InitOk, Message
from maelnode.node_logging import get_logger, log_event
from maelnode.transport import LineReader, Output

_LOG = get_logger("handshake")


def _read_init_message(reader: LineReader) -> Message[Init]:
    item = reader.next_line()
    if item is None:
        raise MissingInit("input ended before the init message arrived")
    line_no, line = item

    raw = loads_json(line, line_no=line_no)
    src, dst, msg_id, in_reply_to, fields = split_envelope(raw, line_no=line_no, line=line)

    tag = fields.get("type")
    if tag != "init":
        raise UnexpectedFirstMessage(
            f"line {line_no}: expected 'init' as first message, got {tag!r}",
            msg_type=tag if isinstance(tag, str) else None,
        )

    init = decode_payload(fields, Init, line_no=line_no, line=line)
    return Message(src=src, dst=dst, body=Body(id=msg_id, in_reply_to=in_reply_to, payload=init))


def handshake(source: Union[LineReader, IO[Any]], output: Output) -> Tuple[Init, Message[Init]]:
    """Consume the init message and acknowledge it.

    Returns the Init payload (identity + membership) and the inbound message.
    """
    reader = source if isinstance(source, LineReader) else LineReader(source)

    try:
        inbound = _read_init_message(reader)
    except DecodeError as e:
        e.phase = "handshake"
        raise

    init = inbound.body.payload
    if inbound.dst != init.node_id:
        log_event(_LOG, "init_dest_mismatch", level=logging.WARNING, dest=inbound.dst, node_id=init.node_id)

    output.bind(init.node_id)
    output.write(inbound.into_reply(output.next_msg_id(), InitOk()))

    log_event(_LOG, "handshake_ok", node_id=init.node_id, node_ids=list(init.node_ids), harness=inbound.src)
    return init, inbound
