from __future__ import annotations

import pytest

from desk.errors import MalformedMessage
from desk.messages import SnapshotMessage, UnknownMessage, encode_message, parse_message
from desk.types import Snapshot


def test_snapshot_and_desk_update_are_recognized():
    msg = parse_message('{"type":"snapshot","data":{"daily_pnl":{"daily_pnl":120.5}}}')
    assert isinstance(msg, SnapshotMessage)
    assert msg.kind == "snapshot"
    assert msg.data["daily_pnl"]["daily_pnl"] == 120.5

    msg = parse_message(b'{"type":"desk_update","data":{"bots":[]}}')
    assert isinstance(msg, SnapshotMessage)
    assert msg.kind == "desk_update"


def test_other_tags_are_unknown_not_errors():
    msg = parse_message('{"type":"alert","level":"warn"}')
    assert isinstance(msg, UnknownMessage)
    assert msg.tag == "alert"

    untagged = parse_message('{"hello":1}')
    assert isinstance(untagged, UnknownMessage)
    assert untagged.tag is None


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1,2]",
        '"snapshot"',
        '{"type":"snapshot"}',
        '{"type":"desk_update","data":[1]}',
        b"\xff\xfe",
    ],
)
def test_malformed_frames_raise(raw):
    with pytest.raises(MalformedMessage):
        parse_message(raw)


def test_encode_is_compact_json():
    assert encode_message({"type": "get_snapshot"}) == '{"type":"get_snapshot"}'


def test_snapshot_is_read_only_copy():
    payload = {"positions": [1]}
    snap = Snapshot.from_payload(payload, source="snapshot", received_ts=5.0)
    payload["positions"] = []

    assert snap.section("positions") == [1]
    assert snap.section("missing", {}) == {}
    assert snap.received_ts == 5.0
    with pytest.raises(TypeError):
        snap.data["positions"] = []  # type: ignore[index]
    with pytest.raises(TypeError):
        Snapshot.from_payload([1, 2], source="rest")  # type: ignore[arg-type]
