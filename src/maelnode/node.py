"""
maelnode: Node callback interface

Node logic is the only extension point of the runtime. A node type provides:

  from_init(seed, init) -> node     one-time construction after the handshake
  step(message, output) -> None     handle exactly one inbound message

step() may write any number of messages through `output` and mutate its own
state. It must not block indefinitely: the run loop is synchronous, so a stalled
step stalls the whole node. Timers or background gossip are the node's own
business (threads etc.), outside this contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, Protocol, Type, TypeVar, runtime_checkable

from maelnode.messages import Init, Message
from maelnode.transport import Output

P = TypeVar("P")
S = TypeVar("S")
N = TypeVar("N", bound="Node[Any, Any]")


@runtime_checkable
class Node(Protocol[P, S]):
    @classmethod
    def from_init(cls: Type[N], seed: S, init: Init) -> N: ...

    def step(self, message: Message[P], output: Output) -> None: ...


class BaseNode(ABC, Generic[P, S]):
    """Optional convenience base: keeps identity and membership from init."""

    def __init__(self, init: Init, seed: Optional[S] = None) -> None:
        self._node_id = init.node_id
        self._node_ids = tuple(init.node_ids)
        self.seed = seed

    @classmethod
    def from_init(cls, seed: Optional[S], init: Init):
        return cls(init, seed)

    @property
    def node_id(self) -> str:
        return self._node_id

    @property
    def node_ids(self) -> tuple:
        return self._node_ids

    @property
    def peers(self) -> tuple:
        return tuple(n for n in self.node_ids if n != self.node_id)

    @abstractmethod
    def step(self, message: Message[P], output: Output) -> None: ...
