# src/maelnode/codec.py
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, TypeAdapter, ValidationError

from maelnode.errors import DecodeError, EncodeError
from maelnode.messages import RESERVED_BODY_FIELDS, Body, Message

Json = Dict[str, Any]

_EXCERPT_CHARS = 200


def _excerpt(line: str) -> str:
    line = line.rstrip("\r\n")
    if len(line) <= _EXCERPT_CHARS:
        return line
    return line[:_EXCERPT_CHARS] + "..."


def dumps_json(obj: Any) -> str:
    # Key order is part of the wire format, so no sort_keys here.
    try:
        s = json.dumps(obj, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
        # Lone surrogates survive json.dumps but cannot go out as UTF-8.
        s.encode("utf-8")
        return s
    except (TypeError, ValueError) as e:
        raise EncodeError("encode_failed", f"encode failed: {e}") from e


class _NonJsonConstant(ValueError):
    pass


def _reject_constant(name: str) -> Any:
    raise _NonJsonConstant(f"non-JSON constant {name}")


def loads_json(data: bytes | str, *, line_no: Optional[int] = None) -> Any:
    text = data
    try:
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        return json.loads(text, parse_constant=_reject_constant)
    except (json.JSONDecodeError, _NonJsonConstant) as e:
        raise DecodeError("invalid_json", f"invalid json: {e}", line_no=line_no, line=_excerpt(str(text))) from e
    except UnicodeDecodeError as e:
        raise DecodeError("invalid_utf8", f"invalid utf-8: {e}", line_no=line_no) from e


def payload_adapter(payload_type: Any) -> TypeAdapter:
    """Accepts a payload type or an already-built TypeAdapter (hot loops reuse one)."""
    if isinstance(payload_type, TypeAdapter):
        return payload_type
    return TypeAdapter(payload_type)


def _coerce_str(v: Any, field: str, *, line_no: Optional[int], line: str) -> str:
    if isinstance(v, str):
        return v
    if v is None:
        raise DecodeError("invalid_envelope", f"missing '{field}' field", line_no=line_no, line=line)
    raise DecodeError(
        "invalid_envelope",
        f"invalid '{field}' field: expected str, got {type(v).__name__}",
        line_no=line_no,
        line=line,
    )


def _coerce_opt_msg_id(v: Any, field: str, *, line_no: Optional[int], line: str) -> int | None:
    if v is None:
        return None
    if isinstance(v, bool) or not isinstance(v, int):
        raise DecodeError(
            "invalid_header",
            f"invalid '{field}' field: expected unsigned int, got {type(v).__name__}",
            line_no=line_no,
            line=line,
        )
    if v < 0:
        raise DecodeError("invalid_header", f"invalid '{field}' field: negative value {v}", line_no=line_no, line=line)
    return v


def _summarize_validation(e: ValidationError) -> str:
    errs = e.errors()
    parts = []
    for err in errs[:5]:
        loc = ".".join(str(x) for x in err.get("loc", ())) or "<body>"
        parts.append(f"{loc}: {err.get('msg')}")
    more = f" (+{len(errs) - 5} more)" if len(errs) > 5 else ""
    return "; ".join(parts) + more


def split_envelope(raw: Any, *, line_no: Optional[int] = None, line: str = "") -> tuple[str, str, Optional[int], Optional[int], Json]:
    """Validate the envelope + header, returning the raw payload fields."""
    if not isinstance(raw, dict):
        raise DecodeError("invalid_envelope", "message must be a JSON object", line_no=line_no, line=line)

    src = _coerce_str(raw.get("src"), "src", line_no=line_no, line=line)
    dst = _coerce_str(raw.get("dest"), "dest", line_no=line_no, line=line)

    body = raw.get("body")
    if not isinstance(body, dict):
        raise DecodeError("invalid_envelope", "message missing 'body' object", line_no=line_no, line=line)

    msg_id = _coerce_opt_msg_id(body.get("msg_id"), "msg_id", line_no=line_no, line=line)
    in_reply_to = _coerce_opt_msg_id(body.get("in_reply_to"), "in_reply_to", line_no=line_no, line=line)
    fields = {k: v for (k, v) in body.items() if k not in RESERVED_BODY_FIELDS}
    return src, dst, msg_id, in_reply_to, fields


def decode_payload(fields: Json, payload_type: Any, *, line_no: Optional[int] = None, line: str = "") -> Any:
    try:
        return payload_adapter(payload_type).validate_python(fields)
    except ValidationError as e:
        raise DecodeError(
            "invalid_payload",
            f"payload does not match declared type: {_summarize_validation(e)}",
            line_no=line_no,
            line=line,
        ) from e


def decode_message(line: bytes | str, payload_type: Any, *, line_no: Optional[int] = None) -> Message[Any]:
    raw = loads_json(line, line_no=line_no)
    text = _excerpt(line.decode("utf-8") if isinstance(line, bytes) else line)

    src, dst, msg_id, in_reply_to, fields = split_envelope(raw, line_no=line_no, line=text)
    payload = decode_payload(fields, payload_type, line_no=line_no, line=text)
    return Message(src=src, dst=dst, body=Body(id=msg_id, in_reply_to=in_reply_to, payload=payload))


def payload_fields(payload: Any) -> Json:
    if isinstance(payload, BaseModel):
        d = payload.model_dump(mode="json", by_alias=True)
    elif isinstance(payload, Mapping):
        d = dict(payload)
    else:
        raise EncodeError("invalid_payload", f"payload must be a pydantic model or mapping, got {type(payload).__name__}")

    clash = RESERVED_BODY_FIELDS.intersection(d)
    if clash:
        raise EncodeError("reserved_field", f"payload uses reserved body field(s): {', '.join(sorted(clash))}")
    return d


def message_to_json(msg: Message[Any]) -> Json:
    body: Json = {}
    if msg.body.id is not None:
        body["msg_id"] = msg.body.id
    if msg.body.in_reply_to is not None:
        body["in_reply_to"] = msg.body.in_reply_to
    body.update(payload_fields(msg.body.payload))
    return {"src": msg.src, "dest": msg.dst, "body": body}


def encode_message(msg: Message[Any]) -> str:
    """Encode one message as a single JSON line (without the trailing newline)."""
    return dumps_json(message_to_json(msg))
