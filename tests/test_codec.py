from __future__ import annotations

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import pytest
from pydantic import Field

from maelnode.codec import decode_message, encode_message
from maelnode.errors import DecodeError, EncodeError
from maelnode.messages import Body, Init, InitOk, InitPayload, Message, Payload

INIT_LINE = '{"src":"c1","dest":"n1","body":{"type":"init","msg_id":1,"node_id":"n1","node_ids":["n1"]}}'


class Broadcast(Payload):
    type: Literal["broadcast"] = "broadcast"
    message: int


class Topology(Payload):
    type: Literal["topology"] = "topology"
    topology: Dict[str, List[str]]


class Read(Payload):
    type: Literal["read"] = "read"
    key: Optional[str] = None


GossipPayload = Annotated[Union[Broadcast, Topology, Read], Field(discriminator="type")]


def _msg(payload: Any, *, msg_id: Optional[int] = 3, in_reply_to: Optional[int] = None) -> Message[Any]:
    return Message(src="n1", dst="n2", body=Body(id=msg_id, in_reply_to=in_reply_to, payload=payload))


def test_decode_init_line() -> None:
    msg = decode_message(INIT_LINE, InitPayload)
    assert msg.src == "c1"
    assert msg.dst == "n1"
    assert msg.body.id == 1
    assert msg.body.in_reply_to is None
    assert msg.body.payload == Init(node_id="n1", node_ids=("n1",))
    assert msg.msg_type == "init"


def test_encode_flattens_body_and_renames_fields() -> None:
    reply = Message(src="n1", dst="c1", body=Body(id=0, in_reply_to=1, payload=InitOk()))
    line = encode_message(reply)
    assert line == '{"src":"n1","dest":"c1","body":{"msg_id":0,"in_reply_to":1,"type":"init_ok"}}'
    assert "\n" not in line
    assert "payload" not in json.loads(line)["body"]


def test_encode_omits_absent_header_fields() -> None:
    line = encode_message(_msg(Broadcast(message=7), msg_id=None))
    assert json.loads(line)["body"] == {"type": "broadcast", "message": 7}


def test_node_ids_order_preserved() -> None:
    line = '{"src":"c0","dest":"n3","body":{"type":"init","msg_id":9,"node_id":"n3","node_ids":["n3","n1","n2"]}}'
    msg = decode_message(line, InitPayload)
    assert msg.body.payload.node_ids == ("n3", "n1", "n2")


@pytest.mark.parametrize(
    "payload",
    [
        Broadcast(message=1000),
        Topology(topology={"n1": ["n2", "n3"], "n2": []}),
        Read(),
        Read(key="κλειδί"),
    ],
)
def test_flatten_round_trip(payload: Any) -> None:
    msg = _msg(payload, msg_id=12, in_reply_to=4)
    assert decode_message(encode_message(msg), GossipPayload) == msg


def test_dict_payload_round_trip() -> None:
    msg = _msg({"type": "generate", "nested": {"a": [1, 2]}}, msg_id=None)
    assert decode_message(encode_message(msg), dict) == msg


def test_decode_accepts_bytes() -> None:
    msg = decode_message(INIT_LINE.encode("utf-8"), InitPayload)
    assert msg.body.payload.node_id == "n1"


def test_unknown_payload_keys_are_ignored() -> None:
    line = '{"src":"c1","dest":"n1","body":{"type":"broadcast","msg_id":2,"message":5,"extra":true}}'
    msg = decode_message(line, GossipPayload)
    assert msg.body.payload == Broadcast(message=5)


def test_invalid_json_carries_line_context() -> None:
    with pytest.raises(DecodeError) as ei:
        decode_message("{not json", GossipPayload, line_no=7)
    assert ei.value.code == "invalid_json"
    assert ei.value.line_no == 7
    assert ei.value.line == "{not json"
    assert "line 7" in str(ei.value)


@pytest.mark.parametrize(
    "line,code",
    [
        ("[1, 2]", "invalid_envelope"),
        ('{"dest":"n1","body":{"type":"read"}}', "invalid_envelope"),
        ('{"src":"c1","body":{"type":"read"}}', "invalid_envelope"),
        ('{"src":"c1","dest":3,"body":{"type":"read"}}', "invalid_envelope"),
        ('{"src":"c1","dest":"n1"}', "invalid_envelope"),
        ('{"src":"c1","dest":"n1","body":{"type":"read","msg_id":true}}', "invalid_header"),
        ('{"src":"c1","dest":"n1","body":{"type":"read","msg_id":-1}}', "invalid_header"),
        ('{"src":"c1","dest":"n1","body":{"type":"read","in_reply_to":"1"}}', "invalid_header"),
        ('{"src":"c1","dest":"n1","body":{"type":"broadcast"}}', "invalid_payload"),
        ('{"src":"c1","dest":"n1","body":{"type":"broadcast","message":"x"}}', "invalid_payload"),
        ('{"src":"c1","dest":"n1","body":{"type":"nope"}}', "invalid_payload"),
    ],
)
def test_decode_rejects_bad_shapes(line: str, code: str) -> None:
    with pytest.raises(DecodeError) as ei:
        decode_message(line, GossipPayload)
    assert ei.value.code == code
    assert ei.value.phase == "decode"


def test_decode_rejects_invalid_utf8() -> None:
    with pytest.raises(DecodeError) as ei:
        decode_message(b'{"src":"\xff"}', dict)
    assert ei.value.code == "invalid_utf8"


def test_encode_rejects_reserved_payload_fields() -> None:
    with pytest.raises(EncodeError) as ei:
        encode_message(_msg({"type": "x", "msg_id": 5}))
    assert ei.value.code == "reserved_field"


def test_encode_rejects_non_model_payload() -> None:
    with pytest.raises(EncodeError) as ei:
        encode_message(_msg(42))
    assert ei.value.code == "invalid_payload"


def test_encode_rejects_unserializable_values() -> None:
    with pytest.raises(EncodeError) as ei:
        encode_message(_msg({"type": "x", "value": object()}))
    assert ei.value.code == "encode_failed"


def test_into_reply_swaps_addresses_and_correlates() -> None:
    req = decode_message(INIT_LINE, InitPayload)
    reply = req.into_reply(0, InitOk())
    assert (reply.src, reply.dst) == ("n1", "c1")
    assert reply.body.id == 0
    assert reply.body.in_reply_to == 1


@pytest.mark.parametrize("token", ["NaN", "Infinity", "-Infinity"])
def test_decode_rejects_non_json_constants(token: str) -> None:
    line = '{"src":"c2","dest":"n1","body":{"type":"read","msg_id":2,"key":%s}}' % token
    with pytest.raises(DecodeError) as ei:
        decode_message(line, dict, line_no=2)
    assert ei.value.code == "invalid_json"
    assert ei.value.line_no == 2


def test_encode_rejects_lone_surrogates() -> None:
    with pytest.raises(EncodeError) as ei:
        encode_message(_msg({"type": "echo_ok", "echo": "\ud800"}))
    assert ei.value.code == "encode_failed"
