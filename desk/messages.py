from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Union

from desk.errors import MalformedMessage

SNAPSHOT_TAGS = frozenset({"snapshot", "desk_update"})

GET_SNAPSHOT: Mapping[str, Any] = {"type": "get_snapshot"}


@dataclass(frozen=True)
class SnapshotMessage:
    kind: Literal["snapshot", "desk_update"]
    data: dict[str, Any]


@dataclass(frozen=True)
class UnknownMessage:
    kind: Literal["unknown"]
    tag: str | None
    raw: dict[str, Any]


DeskMessage = Union[SnapshotMessage, UnknownMessage]


def parse_message(raw: str | bytes | bytearray) -> DeskMessage:
    """
    Boundary parse for push-channel frames.

    - `snapshot` / `desk_update` with an object `data` field -> SnapshotMessage
    - any other tagged object -> UnknownMessage (callers ignore it)
    - anything that isn't a JSON object, or a snapshot tag without object data -> MalformedMessage
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedMessage("frame is not valid utf-8") from e
    if not isinstance(raw, str):
        raise MalformedMessage(f"unsupported frame type {type(raw).__name__}")

    try:
        msg = json.loads(raw)
    except ValueError as e:
        raise MalformedMessage(f"invalid json: {e}") from e
    if not isinstance(msg, dict):
        raise MalformedMessage(f"expected a json object, got {type(msg).__name__}")

    tag = msg.get("type")
    if tag in SNAPSHOT_TAGS:
        data = msg.get("data")
        if not isinstance(data, dict):
            raise MalformedMessage(f"{tag} message without object data")
        return SnapshotMessage(kind=tag, data=data)
    return UnknownMessage(kind="unknown", tag=None if tag is None else str(tag), raw=msg)


def encode_message(message: Mapping[str, Any]) -> str:
    return json.dumps(dict(message), separators=(",", ":"), ensure_ascii=False)
