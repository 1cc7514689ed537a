from __future__ import annotations

import json
import logging

import pytest

from app.monitoring.metrics import (
    realtime_delivery_failures_total,
    realtime_dropped_messages_total,
)
from geocall.presence.registry import PresenceRegistry
from geocall.realtime.connections import ConnectionDirectory, Identified
from geocall.signaling.relay import SignalingRelay


@pytest.fixture()
def relay() -> SignalingRelay:
    return SignalingRelay(PresenceRegistry(), ConnectionDirectory())


def frame(**payload) -> str:
    return json.dumps(payload)


async def identified(relay: SignalingRelay, socket, username: str):
    connection = await relay.open(socket)
    await relay.handle(connection, frame(type="position", username=username, latitude=1, longitude=2))
    socket.sent.clear()
    return connection


@pytest.mark.anyio("asyncio")
async def test_open_sends_init_then_broadcast(relay: SignalingRelay, make_socket) -> None:
    socket = make_socket()

    await relay.open(socket)

    assert socket.sent == [
        {"type": "init", "users": []},
        {"type": "position", "users": []},
    ]


@pytest.mark.anyio("asyncio")
async def test_open_broadcasts_to_existing_connections(relay: SignalingRelay, make_socket) -> None:
    first = make_socket()
    await identified(relay, first, "alice")

    await relay.open(make_socket())

    (update,) = first.sent
    assert update["type"] == "position"
    assert [user["username"] for user in update["users"]] == ["alice"]


@pytest.mark.anyio("asyncio")
async def test_position_identifies_and_broadcasts(relay: SignalingRelay, make_socket) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    await relay.handle(connection, frame(type="position", username="bob", latitude=1, longitude=2))

    assert connection.state == Identified("bob")
    assert relay.directory.find_by_identity("bob") is connection
    (update,) = socket.sent
    assert update["type"] == "position"
    (user,) = update["users"]
    assert (user["username"], user["latitude"], user["longitude"], user["speed"]) == ("bob", 1.0, 2.0, 0.0)


@pytest.mark.anyio("asyncio")
async def test_position_accepts_legacy_shape(relay: SignalingRelay, make_socket) -> None:
    connection = await relay.open(make_socket())

    await relay.handle(
        connection, frame(type="position", username="carol", position={"x": 7.5, "y": 45.1}, speed=3)
    )

    record = relay.registry.get("carol")
    assert (record.latitude, record.longitude, record.speed) == (45.1, 7.5, 3.0)


@pytest.mark.anyio("asyncio")
async def test_explicit_coordinates_win_over_legacy_shape(relay: SignalingRelay, make_socket) -> None:
    connection = await relay.open(make_socket())

    await relay.handle(
        connection,
        frame(type="position", username="carol", latitude=10, position={"x": 7.5, "y": 45.1}),
    )

    record = relay.registry.get("carol")
    assert (record.latitude, record.longitude) == (10.0, 7.5)


@pytest.mark.anyio("asyncio")
async def test_position_update_fully_replaces_record(relay: SignalingRelay, make_socket) -> None:
    connection = await relay.open(make_socket())
    await relay.handle(connection, frame(type="position", username="a", latitude=1, longitude=2, speed=3))

    await relay.handle(connection, frame(type="position", username="a", latitude=5))

    record = relay.registry.get("a")
    assert (record.latitude, record.longitude, record.speed) == (5.0, 0.0, 0.0)


@pytest.mark.anyio("asyncio")
async def test_untyped_and_unknown_messages_fall_back_to_position(
    relay: SignalingRelay, make_socket
) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    await relay.handle(connection, frame(username="dave", latitude=3, longitude=4))
    await relay.handle(connection, frame(type="hello", username="dave", latitude=6))

    assert len(socket.of_type("position")) == 2
    record = relay.registry.get("dave")
    assert (record.latitude, record.longitude) == (6.0, 0.0)
    assert connection.state == Identified("dave")


@pytest.mark.anyio("asyncio")
async def test_binary_frames_are_decoded(relay: SignalingRelay, make_socket) -> None:
    connection = await relay.open(make_socket())

    await relay.handle(connection, frame(type="position", username="émile", latitude=1).encode("utf-8"))

    assert relay.registry.get("émile") is not None


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        b"\xff\xfe",
        json.dumps({"type": "position", "latitude": 1}),
        json.dumps({"type": "position", "username": ""}),
        json.dumps({"latitude": 1, "longitude": 2}),
    ],
)
async def test_malformed_messages_are_logged_and_dropped(
    relay: SignalingRelay, make_socket, caplog, raw
) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    with caplog.at_level(logging.WARNING):
        await relay.handle(connection, raw)

    assert socket.sent == []
    assert relay.registry.list() == []
    assert connection.identity is None
    assert any(record.levelno == logging.WARNING for record in caplog.records)
    assert realtime_dropped_messages_total.value("malformed") == 1.0


@pytest.mark.anyio("asyncio")
async def test_request_positions_replies_then_broadcasts(relay: SignalingRelay, make_socket) -> None:
    requester = make_socket()
    other = make_socket()
    await identified(relay, other, "erin")
    connection = await relay.open(requester)
    requester.sent.clear()
    other.sent.clear()

    await relay.handle(connection, frame(type="request_positions"))

    assert [payload["type"] for payload in requester.sent] == ["position", "position"]
    assert len(other.of_type("position")) == 1
    assert relay.registry.get("erin") is not None
    assert connection.identity is None


@pytest.mark.anyio("asyncio")
async def test_request_positions_is_idempotent(relay: SignalingRelay, make_socket) -> None:
    socket = make_socket()
    connection = await identified(relay, socket, "frank")

    await relay.handle(connection, frame(type="request_positions"))
    first = [dict(user) for user in socket.sent[0]["users"]]
    socket.sent.clear()
    await relay.handle(connection, frame(type="request_positions"))
    second = socket.sent[0]["users"]

    assert first == second


@pytest.mark.anyio("asyncio")
async def test_call_offer_reaches_target_with_sender(relay: SignalingRelay, make_socket) -> None:
    callee = make_socket()
    caller = make_socket()
    await identified(relay, callee, "bob")
    caller_connection = await identified(relay, caller, "alice")
    callee.sent.clear()

    offer = {"type": "offer", "sdp": "v=0"}
    await relay.handle(caller_connection, frame(type="call_offer", target="bob", offer=offer))

    assert callee.sent == [{"type": "call_offer", "offer": offer, "from": "alice"}]
    assert caller.sent == []


@pytest.mark.anyio("asyncio")
async def test_call_offer_from_unidentified_connection_omits_sender(
    relay: SignalingRelay, make_socket
) -> None:
    callee = make_socket()
    await identified(relay, callee, "bob")
    anonymous = await relay.open(make_socket())
    callee.sent.clear()

    await relay.handle(anonymous, frame(type="call_offer", target="bob", offer={"sdp": "v=0"}))

    assert callee.sent == [{"type": "call_offer", "offer": {"sdp": "v=0"}}]


@pytest.mark.anyio("asyncio")
async def test_call_offer_to_absent_target_is_silent(relay: SignalingRelay, make_socket) -> None:
    caller = make_socket()
    bystander = make_socket()
    caller_connection = await identified(relay, caller, "alice")
    await identified(relay, bystander, "zoe")
    caller.sent.clear()
    bystander.sent.clear()

    await relay.handle(caller_connection, frame(type="call_offer", target="ghost", offer={}))

    assert caller.sent == []
    assert bystander.sent == []
    assert realtime_dropped_messages_total.value("unknown_target") == 1.0


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ({"type": "call_answer", "answer": {"sdp": "v=0"}}, {"type": "call_answer", "answer": {"sdp": "v=0"}}),
        ({"type": "call_rejected", "reason": "busy"}, {"type": "call_rejected"}),
        ({"type": "call_ended"}, {"type": "call_ended"}),
        (
            {"type": "ice_candidate", "candidate": {"candidate": "a=1"}, "username": "alice"},
            {"type": "ice_candidate", "candidate": {"candidate": "a=1"}, "from": "alice"},
        ),
    ],
)
async def test_call_control_messages_are_forwarded(
    relay: SignalingRelay, make_socket, message, expected
) -> None:
    callee = make_socket()
    await identified(relay, callee, "bob")
    caller = await identified(relay, make_socket(), "alice")
    callee.sent.clear()

    await relay.handle(caller, json.dumps({**message, "target": "bob"}))

    assert callee.sent == [expected]


@pytest.mark.anyio("asyncio")
async def test_ice_candidate_sender_comes_from_payload(relay: SignalingRelay, make_socket) -> None:
    callee = make_socket()
    await identified(relay, callee, "bob")
    caller = await identified(relay, make_socket(), "alice")
    callee.sent.clear()

    await relay.handle(caller, frame(type="ice_candidate", target="bob", candidate={}, username="mallory"))

    assert callee.sent == [{"type": "ice_candidate", "candidate": {}, "from": "mallory"}]


@pytest.mark.anyio("asyncio")
async def test_relay_messages_never_touch_presence(relay: SignalingRelay, make_socket) -> None:
    await identified(relay, make_socket(), "bob")
    anonymous = await relay.open(make_socket())
    before = relay.registry.snapshot()

    for kind in ("call_offer", "call_answer", "call_rejected", "ice_candidate", "call_ended"):
        await relay.handle(anonymous, frame(type=kind, target="bob", username="intruder"))

    assert relay.registry.snapshot() == before
    assert anonymous.identity is None


@pytest.mark.anyio("asyncio")
async def test_relay_without_target_is_dropped(relay: SignalingRelay, make_socket, caplog) -> None:
    await relay.open(make_socket())
    sender = await relay.open(make_socket())

    with caplog.at_level(logging.WARNING):
        await relay.handle(sender, frame(type="call_offer", offer={}))

    assert realtime_dropped_messages_total.value("malformed") == 1.0


@pytest.mark.anyio("asyncio")
async def test_broadcast_survives_failing_connection(relay: SignalingRelay, make_socket) -> None:
    healthy = make_socket()
    broken = make_socket(fail=True)
    await relay.open(broken)
    connection = await relay.open(healthy)
    healthy.sent.clear()

    await relay.handle(connection, frame(type="position", username="gus", latitude=1))

    assert len(healthy.of_type("position")) == 1
    assert realtime_delivery_failures_total.value("presence") >= 1.0


@pytest.mark.anyio("asyncio")
async def test_close_removes_presence_and_broadcasts_once(relay: SignalingRelay, make_socket) -> None:
    leaving = await identified(relay, make_socket(), "bob")
    remaining = make_socket()
    await identified(relay, remaining, "alice")

    await relay.close(leaving)

    assert [record.username for record in relay.registry.list()] == ["alice"]
    (update,) = remaining.sent
    assert update["type"] == "position"
    assert [user["username"] for user in update["users"]] == ["alice"]
    assert relay.directory.find_by_identity("bob") is None


@pytest.mark.anyio("asyncio")
async def test_close_of_unidentified_connection_is_silent(relay: SignalingRelay, make_socket) -> None:
    remaining = make_socket()
    await identified(relay, remaining, "alice")
    anonymous = await relay.open(make_socket())
    remaining.sent.clear()

    await relay.close(anonymous)

    assert remaining.sent == []
    assert len(relay.directory) == 1


@pytest.mark.anyio("asyncio")
async def test_huge_integer_coordinate_keeps_connection_usable(
    relay: SignalingRelay, make_socket
) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    await relay.handle(
        connection, '{"type": "position", "username": "a", "latitude": 1' + "0" * 400 + ', "longitude": 2}'
    )

    record = relay.registry.get("a")
    assert (record.latitude, record.longitude) == (0.0, 2.0)
    (update,) = socket.sent
    assert update["users"][0]["latitude"] == 0.0


@pytest.mark.anyio("asyncio")
async def test_ping_without_username_is_answered_without_dispatch(
    relay: SignalingRelay, make_socket
) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    await relay.handle(connection, frame(type="ping"))
    await relay.handle(connection, frame(type="pong"))

    assert socket.sent == [{"type": "pong"}]
    assert relay.registry.list() == []
    assert realtime_dropped_messages_total.value("malformed") == 0.0


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("kind", ["ping", "pong"])
async def test_ping_or_pong_with_username_is_a_position_update(
    relay: SignalingRelay, make_socket, kind
) -> None:
    socket = make_socket()
    connection = await relay.open(socket)
    socket.sent.clear()

    await relay.handle(connection, frame(type=kind, username="alice", latitude=1, longitude=2))

    record = relay.registry.get("alice")
    assert (record.latitude, record.longitude) == (1.0, 2.0)
    assert connection.state == Identified("alice")
    assert [payload["type"] for payload in socket.sent] == ["position"]
