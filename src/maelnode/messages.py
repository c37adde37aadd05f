# src/maelnode/messages.py
"""
Wire data model.

  Message[P] = {src, dst, body: Body[P]}
  Body[P]    = {id, in_reply_to, payload: P}

The envelope and header are frozen dataclasses owned by the runtime. The
payload is owned by node logic: a Payload subclass, a discriminated union of
Payload subclasses tagged by `type`, or a plain dict.

On the wire `dst` is `dest`, `id` is `msg_id`, and payload fields sit next to
the header fields in one flat body object (see maelnode.codec).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Generic, Literal, Mapping, Optional, Tuple, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

P = TypeVar("P")

NodeId = str
MsgId = int

# Header keys that share the body object with payload fields.
RESERVED_BODY_FIELDS = frozenset({"msg_id", "in_reply_to"})


class Payload(BaseModel):
    """Base class for node payload shapes.

    Unknown inbound keys are ignored; declared fields are required and typed.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)


# ---------------------------------------------------------------------
# Handshake payloads
# ---------------------------------------------------------------------


class Init(Payload):
    type: Literal["init"] = "init"
    node_id: NodeId
    node_ids: Tuple[NodeId, ...]


class InitOk(Payload):
    type: Literal["init_ok"] = "init_ok"


InitPayload = Annotated[Union[Init, InitOk], Field(discriminator="type")]


# ---------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Body(Generic[P]):
    id: Optional[MsgId]
    in_reply_to: Optional[MsgId]
    payload: P


@dataclass(frozen=True, slots=True)
class Message(Generic[P]):
    src: NodeId
    dst: NodeId
    body: Body[P]

    @property
    def msg_type(self) -> Optional[str]:
        return payload_type_tag(self.body.payload)

    def into_reply(self, msg_id: Optional[MsgId], payload: Any) -> "Message[Any]":
        """Build the answer to this message: addresses swapped, correlated by msg_id."""
        return Message(
            src=self.dst,
            dst=self.src,
            body=Body(id=msg_id, in_reply_to=self.body.id, payload=payload),
        )


def payload_type_tag(payload: Any) -> Optional[str]:
    if isinstance(payload, BaseModel):
        v = getattr(payload, "type", None)
    elif isinstance(payload, Mapping):
        v = payload.get("type")
    else:
        v = None
    return v if isinstance(v, str) else None
