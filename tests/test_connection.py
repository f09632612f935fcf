from __future__ import annotations

import asyncio

import pytest

from bridge.errors import CallConnectionError, SendOnClosedConnectionError, StreamNotStartedError
from fakes import FakeRealtimeSocket, FakeTwilioSocket, frame, media_frame, start_frame
from realtime.connection import RealtimeConnection
from realtime.protocol import InputAudioBufferAppend
from telephony.connection import TelephonyConnection
from telephony.protocol import ClearAction


def test_subscribe_rejects_unknown_tag():
    connection = TelephonyConnection(FakeTwilioSocket())  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        connection.subscribe("response.audio.delta", lambda event: None)


def test_handlers_run_in_subscription_order():
    async def scenario():
        connection = TelephonyConnection(FakeTwilioSocket())  # type: ignore[arg-type]
        seen: list[str] = []

        async def first(event):
            seen.append(f"first:{event.media.payload}")

        async def second(event):
            seen.append(f"second:{event.media.payload}")

        connection.subscribe("media", first)
        connection.subscribe("media", second)
        await connection.dispatch(frame(media_frame("P1")))
        await connection.dispatch(frame(media_frame("P2")))
        return seen

    assert asyncio.run(scenario()) == ["first:P1", "second:P1", "first:P2", "second:P2"]


def test_unknown_and_malformed_frames_are_discarded():
    async def scenario():
        connection = TelephonyConnection(FakeTwilioSocket())  # type: ignore[arg-type]
        seen = []

        async def on_media(event):
            seen.append(event)

        connection.subscribe("media", on_media)
        await connection.dispatch('{"event": "heartbeat"}')
        await connection.dispatch('{"event": "media"}')
        await connection.dispatch("{{{")
        await connection.dispatch(frame(media_frame("OK")))
        return connection, seen

    connection, seen = asyncio.run(scenario())
    assert [event.media.payload for event in seen] == ["OK"]
    assert connection.stats.frames_received == 4
    assert connection.stats.frames_discarded == 3


def test_start_frame_captures_stream_details():
    async def scenario():
        connection = TelephonyConnection(FakeTwilioSocket())  # type: ignore[arg-type]
        with pytest.raises(StreamNotStartedError):
            _ = connection.stream_sid
        await connection.dispatch(frame(start_frame("SID9", "CA9")))
        return connection

    connection = asyncio.run(scenario())
    assert connection.started
    assert connection.stream_sid == "SID9"
    assert connection.call_sid == "CA9"
    assert connection.media_format.encoding == "audio/x-mulaw"
    assert connection.custom_parameters == {"campaign": "spring"}


def test_send_after_close_is_dropped():
    async def scenario():
        socket = FakeTwilioSocket()
        connection = TelephonyConnection(socket)  # type: ignore[arg-type]
        assert await connection.send(ClearAction(stream_sid="SID1")) is True
        await connection.close()
        assert await connection.send(ClearAction(stream_sid="SID1")) is False
        return socket, connection

    socket, connection = asyncio.run(scenario())
    assert len(socket.sent) == 1
    assert connection.stats.actions_sent == 1
    assert connection.stats.dropped_sends == 1


def test_send_on_vanished_transport_is_dropped():
    async def scenario():
        socket = FakeRealtimeSocket()
        connection = RealtimeConnection(socket)  # type: ignore[arg-type]
        socket.gone = True
        result = await connection.send(InputAudioBufferAppend(audio="AAAA"))
        return result, connection

    result, connection = asyncio.run(scenario())
    assert result is False
    assert connection.closed
    assert connection.stats.dropped_sends == 1


def test_strict_sends_raise_on_closed_connection():
    async def scenario():
        connection = RealtimeConnection(FakeRealtimeSocket(), strict_sends=True)  # type: ignore[arg-type]
        await connection.close()
        with pytest.raises(SendOnClosedConnectionError):
            await connection.send(InputAudioBufferAppend(audio="AAAA"))

    asyncio.run(scenario())


def test_close_is_idempotent():
    async def scenario():
        socket = FakeTwilioSocket()
        connection = TelephonyConnection(socket)  # type: ignore[arg-type]
        await connection.close()
        await connection.close()
        return socket

    assert asyncio.run(scenario()).close_calls == 1


def test_run_returns_on_orderly_close():
    async def scenario():
        socket = FakeTwilioSocket()
        connection = TelephonyConnection(socket)  # type: ignore[arg-type]
        seen = []

        async def on_media(event):
            seen.append(event.media.payload)

        connection.subscribe("media", on_media)
        socket.feed(media_frame("P1"))
        socket.hang_up(1000)
        await connection.run()
        return connection, seen

    connection, seen = asyncio.run(scenario())
    assert seen == ["P1"]
    assert connection.closed


def test_run_raises_on_abnormal_close():
    async def scenario():
        socket = FakeTwilioSocket()
        connection = TelephonyConnection(socket)  # type: ignore[arg-type]
        socket.hang_up(1011)
        with pytest.raises(CallConnectionError):
            await connection.run()
        assert connection.closed

        realtime_socket = FakeRealtimeSocket()
        realtime = RealtimeConnection(realtime_socket)  # type: ignore[arg-type]
        realtime_socket.drop()
        with pytest.raises(CallConnectionError):
            await realtime.run()

    asyncio.run(scenario())


def test_realtime_run_returns_when_agent_closes_cleanly():
    async def scenario():
        socket = FakeRealtimeSocket()
        connection = RealtimeConnection(socket)  # type: ignore[arg-type]
        socket.feed({"type": "input_audio_buffer.speech_stopped", "audio_end_ms": 10})
        socket.hang_up()
        await connection.run()
        assert await connection.send(InputAudioBufferAppend(audio="AAAA")) is False
        return connection

    connection = asyncio.run(scenario())
    assert connection.closed
    assert connection.stats.frames_received == 1
