#!/usr/bin/env python3

"""Echo node for manual harness runs.

Replies to every `echo` with an `echo_ok` carrying the same value.

Usage (with the harness's echo workload):
  maelstrom test -w echo --bin scripts/echo_node.py --node-count 1 --time-limit 10

Optional env overrides:
  MAELNODE_LOG_LEVEL=DEBUG
  MAELNODE_LOG_MESSAGES=1
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import Field

from maelnode import BaseNode, Message, Output, Payload, main


class Echo(Payload):
    type: Literal["echo"] = "echo"
    echo: Any


class EchoOk(Payload):
    type: Literal["echo_ok"] = "echo_ok"
    echo: Any


EchoPayload = Annotated[Union[Echo, EchoOk], Field(discriminator="type")]


class EchoNode(BaseNode):
    def step(self, message: Message[Any], output: Output) -> None:
        payload = message.body.payload
        if isinstance(payload, Echo):
            output.reply(message, EchoOk(echo=payload.echo))


if __name__ == "__main__":
    raise SystemExit(main(EchoNode, EchoPayload))
