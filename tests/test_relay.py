import asyncio
import logging

import pytest
from pydantic import ValidationError

from connection import Connection, ConnectionState
from fakes import FakeWebSocket, bytes_frame, disconnect_frame, settle, text_frame
from registry import Room
from relay import RelaySession
from schemas.signaling import MessageType, SignalingMessage

pytestmark = pytest.mark.anyio

OFFER = '{"type":"offer","sdp":"v=0\\r\\no=- 46117317 2 IN IP4 127.0.0.1"}'
ANSWER = '{"sdp": "v=0", "type": "answer"}'
CANDIDATE = '{"type":"ice_candidate","candidate":{"candidate":"candidate:1 1 UDP 2122252543 10.0.0.1 54400 typ host","sdpMid":"0","sdpMLineIndex":0}}'


async def room_with_listener(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    listener = Connection(FakeWebSocket())
    await room.join(listener)
    return room, listener


async def test_recognized_messages_are_relayed_verbatim(registry):
    room, listener = await room_with_listener(registry)
    ws = FakeWebSocket([text_frame(OFFER), text_frame(ANSWER), text_frame(CANDIDATE)])

    await RelaySession(ws, room, registry=registry).run()

    assert listener.websocket.sent == [OFFER, ANSWER, CANDIDATE]
    assert ws.sent == []


async def test_decode_failure_does_not_end_the_session(registry):
    room, listener = await room_with_listener(registry)
    ws = FakeWebSocket([
        text_frame("not json at all"),
        text_frame('["offer"]'),
        text_frame('{"type":"offer","sdp":42}'),
        text_frame(OFFER),
    ])
    session = RelaySession(ws, room, registry=registry)

    await session.run()

    assert listener.websocket.sent == [OFFER]
    assert session.message_count == 4


async def test_unrecognized_type_is_dropped(registry, caplog):
    caplog.set_level(logging.WARNING)
    room, listener = await room_with_listener(registry)
    ws = FakeWebSocket([text_frame('{"type":"bye"}'), text_frame('{"sdp":"v=0"}'), text_frame(ANSWER)])

    await RelaySession(ws, room, registry=registry).run()

    assert listener.websocket.sent == [ANSWER]
    assert any("Unknown message type" in r.getMessage() for r in caplog.records)


async def test_binary_frames_are_decoded_as_utf8(registry):
    room, listener = await room_with_listener(registry)
    ws = FakeWebSocket([bytes_frame(b"\xff\xfe"), bytes_frame(OFFER.encode("utf-8"))])

    await RelaySession(ws, room, registry=registry).run()

    assert listener.websocket.sent == [OFFER]


async def test_last_departure_deletes_the_room(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    ws = FakeWebSocket([text_frame(OFFER)])
    session = RelaySession(ws, room, registry=registry)

    await session.run()

    assert room_id not in registry
    assert len(room) == 0
    assert session.conn.state == ConnectionState.CLOSED
    assert ws.close_calls == [(1000, None)]


async def test_room_with_remaining_member_survives(registry):
    room, listener = await room_with_listener(registry)

    await RelaySession(FakeWebSocket(), room, registry=registry).run()

    assert room.room_id in registry
    assert room.members() == {listener}


async def test_teardown_runs_once(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    ws = FakeWebSocket()
    session = RelaySession(ws, room, registry=registry)
    await room.join(session.conn)
    session.conn.transition(ConnectionState.JOINED)

    await session.teardown()
    await session.teardown()

    assert ws.close_calls == [(1000, None)]
    assert room_id not in registry


async def test_teardown_does_not_steal_a_new_members_room(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    session = RelaySession(FakeWebSocket(), room, registry=registry)
    await room.join(session.conn)
    newcomer = Connection(FakeWebSocket())

    assert await room.leave(session.conn) is True
    await room.join(newcomer)
    await session.teardown()

    assert room_id in registry
    assert room.members() == {newcomer}


async def test_join_on_closed_room_is_rejected(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    await registry.delete_room_if_empty(room_id)
    ws = FakeWebSocket([text_frame(OFFER)])

    await RelaySession(ws, room, registry=registry).run()

    assert ws.close_calls == [(1008, "Room not found")]
    assert len(room) == 0
    assert room_id not in registry


async def test_expected_and_unexpected_closures_are_logged_differently(registry, caplog):
    caplog.set_level(logging.INFO, logger="relay")
    room, _ = await room_with_listener(registry)

    await RelaySession(FakeWebSocket([disconnect_frame(1001)]), room, registry=registry).run()
    await RelaySession(FakeWebSocket([disconnect_frame(1005)]), room, registry=registry).run()
    await RelaySession(FakeWebSocket([disconnect_frame(1006)]), room, registry=registry).run()

    closures = [r for r in caplog.records if "WebSocket closed" in r.getMessage()]
    assert [r.levelno for r in closures] == [logging.INFO, logging.INFO, logging.WARNING]


async def test_cancelled_session_still_leaves_and_deletes_its_room(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    gate = asyncio.Event()
    ws = FakeWebSocket(hang=True, gate=gate)
    session = RelaySession(ws, room, registry=registry)
    task = asyncio.create_task(session.run())
    await settle()
    assert room.members() == {session.conn}

    # a broadcast stuck on this session's slow socket holds the room read lock
    outsider = Connection(FakeWebSocket())
    broadcast = asyncio.create_task(room.broadcast(outsider, OFFER))
    await settle()
    assert room._lock.readers == 1

    task.cancel()
    await settle()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert session.conn in room.members()

    gate.set()
    await broadcast
    await session._release_task

    assert room.members() == frozenset()
    assert room_id not in registry
    assert ws.close_calls == [(1000, None)]


async def test_read_error_still_tears_down(registry):
    room_id = await registry.create_room()
    room = await registry.get_room(room_id)
    ws = FakeWebSocket([RuntimeError("connection reset")])

    await RelaySession(ws, room, registry=registry).run()

    assert room_id not in registry
    assert ws.close_calls == [(1000, None)]


async def test_room_without_registry_is_never_deleted():
    lobby = Room("lobby")
    await RelaySession(FakeWebSocket([text_frame(OFFER)]), lobby).run()

    assert len(lobby) == 0
    assert not lobby.closed


def test_message_type_parsing():
    assert SignalingMessage.decode(OFFER).message_type == MessageType.OFFER
    assert SignalingMessage.decode(ANSWER).message_type == MessageType.ANSWER
    assert SignalingMessage.decode(CANDIDATE).message_type == MessageType.ICE_CANDIDATE
    assert SignalingMessage.decode('{"type":"OFFER"}').message_type == MessageType.UNRECOGNIZED
    assert SignalingMessage.decode('{"type":"unrecognized"}').message_type == MessageType.UNRECOGNIZED
    assert SignalingMessage.decode("{}").message_type == MessageType.UNRECOGNIZED


def test_envelope_ignores_unknown_fields_and_keeps_candidate_opaque():
    envelope = SignalingMessage.decode('{"type":"ice_candidate","candidate":[1,{"a":null}],"extra":true,"room":"abc"}')
    assert envelope.candidate == [1, {"a": None}]
    assert envelope.sdp is None
    assert envelope.room == "abc"
    assert not hasattr(envelope, "extra")


def test_non_string_type_is_a_decode_error():
    with pytest.raises(ValidationError):
        SignalingMessage.decode('{"type":5,"sdp":"v=0"}')
    with pytest.raises(ValidationError):
        SignalingMessage.decode('{"type":["offer"]}')


async def test_non_string_type_is_dropped_without_disconnecting(registry):
    room, listener = await room_with_listener(registry)
    ws = FakeWebSocket([text_frame('{"type":1}'), text_frame(OFFER)])
    session = RelaySession(ws, room, registry=registry)

    await session.run()

    assert listener.websocket.sent == [OFFER]
    assert session.message_count == 2
