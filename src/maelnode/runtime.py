# src/maelnode/runtime.py
"""
maelnode: Run loop

State machine:
  AWAITING_INIT -> RUNNING -> TERMINATED

  AWAITING_INIT: handshake + Node.from_init; any failure terminates.
  RUNNING:       one line at a time: decode Message[P], call step().
                 A bad line or a failing step terminates; nothing is skipped.
  TERMINATED:    end of input (clean) or first fatal error.

Strictly sequential: input order in, production order out, one step at a time.
"""

from __future__ import annotations

import logging
import sys
from enum import Enum
from typing import IO, Any, Mapping, Optional, Type

from maelnode.codec import decode_message, payload_adapter
from maelnode.config import RuntimeConfig, runtime_config_from_env
from maelnode.env import load_dotenv_if_present
from maelnode.errors import (
    EncodeError,
    InitializationError,
    NodeError,
    ProtocolError,
    StepError,
    TransportError,
    format_error_chain,
)
from maelnode.handshake import handshake
from maelnode.messages import Init, Message
from maelnode.node import Node
from maelnode.node_logging import configure_logging, get_logger, log_event
from maelnode.transport import LineReader, Output

_LOG = get_logger("runtime")


class RunState(str, Enum):
    AWAITING_INIT = "AWAITING_INIT"
    RUNNING = "RUNNING"
    TERMINATED = "TERMINATED"


def _default_stdin() -> IO[Any]:
    return getattr(sys.stdin, "buffer", sys.stdin)


def _default_stdout() -> IO[Any]:
    return getattr(sys.stdout, "buffer", sys.stdout)


class NodeRuntime:
    def __init__(
        self,
        node_type: Type[Node[Any, Any]],
        payload_type: Any,
        *,
        seed: Any = None,
        input_stream: Optional[IO[Any]] = None,
        output_stream: Optional[IO[Any]] = None,
        config: Optional[RuntimeConfig] = None,
    ) -> None:
        self._cfg = config or runtime_config_from_env()
        self._node_type = node_type
        self._payload = payload_adapter(payload_type)
        self._seed = seed

        self._reader = LineReader(
            input_stream if input_stream is not None else _default_stdin(),
            max_line_bytes=self._cfg.max_line_bytes,
        )
        self.output = Output(
            output_stream if output_stream is not None else _default_stdout(),
            log_messages=self._cfg.log_messages,
        )

        self.state = RunState.AWAITING_INIT
        self.init: Optional[Init] = None
        self.node: Optional[Node[Any, Any]] = None
        self.dispatched = 0
        self.last_error: Optional[NodeError] = None

    @property
    def config(self) -> RuntimeConfig:
        return self._cfg

    def run(self) -> int:
        """Drive the node until end of input. Returns the number of step() calls."""
        if self.state != RunState.AWAITING_INIT:
            raise ProtocolError(f"runtime cannot run from state {self.state.value}")

        try:
            self._start()
            self.state = RunState.RUNNING
            self._loop()
        except NodeError as e:
            self.last_error = e
            log_event(
                _LOG,
                "run_failed",
                level=logging.ERROR,
                code=e.code,
                phase=e.phase,
                error=str(e),
                dispatched=self.dispatched,
            )
            raise
        finally:
            self.state = RunState.TERMINATED

        log_event(_LOG, "run_finished", dispatched=self.dispatched, written=self.output.messages_written)
        return self.dispatched

    def _start(self) -> None:
        init, _ = handshake(self._reader, self.output)
        self.init = init
        try:
            self.node = self._node_type.from_init(self._seed, init)
        except Exception as e:
            raise InitializationError(f"node construction failed for {init.node_id}: {e}") from e
        log_event(_LOG, "node_started", node_id=init.node_id, node_type=self._node_type.__name__)

    def _loop(self) -> None:
        for line_no, line in self._reader:
            if self._cfg.log_messages:
                log_event(_LOG, "message_in", level=logging.DEBUG, line_no=line_no, line=line)
            msg = decode_message(line, self._payload, line_no=line_no)
            self._dispatch(line_no, msg)

    def _dispatch(self, line_no: int, msg: Message[Any]) -> None:
        if self.node is None:
            raise ProtocolError("step dispatched before the node was constructed")
        try:
            self.node.step(msg, self.output)
        except (TransportError, EncodeError):
            raise
        except Exception as e:
            raise StepError(
                f"step failed on line {line_no} (type={msg.msg_type!r}): {e}",
                line_no=line_no,
                msg_type=msg.msg_type,
            ) from e
        self.dispatched += 1


def run(
    node_type: Type[Node[Any, Any]],
    payload_type: Any,
    *,
    seed: Any = None,
    input_stream: Optional[IO[Any]] = None,
    output_stream: Optional[IO[Any]] = None,
    config: Optional[RuntimeConfig] = None,
) -> int:
    rt = NodeRuntime(
        node_type,
        payload_type,
        seed=seed,
        input_stream=input_stream,
        output_stream=output_stream,
        config=config,
    )
    return rt.run()


def main(
    node_type: Type[Node[Any, Any]],
    payload_type: Any,
    *,
    seed: Any = None,
    input_stream: Optional[IO[Any]] = None,
    output_stream: Optional[IO[Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> int:
    """Process entry point. Returns the exit code.

    Usage in a node script:
        raise SystemExit(main(EchoNode, EchoPayload))
    """
    # Load .env early so MAELNODE_* vars exist before config is read.
    # An explicit env mapping replaces the process environment entirely.
    if env is None:
        load_dotenv_if_present()
    cfg = runtime_config_from_env(env)
    configure_logging(cfg.log_level)

    try:
        run(
            node_type,
            payload_type,
            seed=seed,
            input_stream=input_stream,
            output_stream=output_stream,
            config=cfg,
        )
    except NodeError as e:
        sys.stderr.write(f"error: {format_error_chain(e)}\n")
        sys.stderr.flush()
        return 1
    return 0
