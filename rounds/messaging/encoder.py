"""
MessagePack framing for the outbound snapshot stream.

Every stream message is a map with a "type" key naming a StreamMessageType and
the JSON-mode dump of a model as the remaining keys, so datetimes and enums
travel as plain strings.
"""

from enum import StrEnum
from typing import Any

import msgpack
from pydantic import BaseModel

# Inbound stream messages are never expected; anything larger is refused outright.
MAX_MESSAGE_BYTES = 64 * 1024


class StreamMessageType(StrEnum):
    SNAPSHOT = "snapshot"
    VARIANT_UPDATE = "variant_update"
    READINESS = "readiness"


class DecodeError(Exception):
    """Raised when stream bytes are not a well-formed stream message."""


def encode_message(message_type: StreamMessageType, body: BaseModel | dict[str, Any]) -> bytes:
    payload = body.model_dump(mode="json") if isinstance(body, BaseModel) else dict(body)
    payload["type"] = message_type.value
    return msgpack.packb(payload)


def decode_message(data: bytes) -> dict[str, Any]:
    """
    Decode one stream message, checking its size and its "type" key.

    Used by consumers and tests; raises DecodeError on any malformed input.
    """
    if len(data) > MAX_MESSAGE_BYTES:
        raise DecodeError(f"message too large: {len(data)} bytes (max {MAX_MESSAGE_BYTES})")
    try:
        message = msgpack.unpackb(data, raw=False)
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"not a MessagePack message: {e}") from e

    if not isinstance(message, dict):
        raise DecodeError(f"expected a map, got {type(message).__name__}")
    if message.get("type") not in set(StreamMessageType):
        raise DecodeError(f"unknown stream message type {message.get('type')!r}")
    return message
