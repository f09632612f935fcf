"""In-memory stand-ins for the two websockets a call relays between."""

from __future__ import annotations

import asyncio
import json
from typing import Any

from fastapi import WebSocketDisconnect
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from bridge.errors import CallConnectionError
from bridge.session import CallSession
from realtime.connection import RealtimeConnection
from telephony.connection import TelephonyConnection


class FakeTwilioSocket:
    """Mimics the parts of Starlette's WebSocket the telephony adapter uses."""

    def __init__(self, wire: list[tuple[str, dict]] | None = None) -> None:
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict] = []
        self.wire = wire if wire is not None else []
        self.close_calls = 0
        self.gone = False

    def feed(self, message: dict) -> None:
        self.inbox.put_nowait(json.dumps(message))

    def hang_up(self, code: int = 1000) -> None:
        self.inbox.put_nowait(WebSocketDisconnect(code=code))

    async def receive_text(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            self.gone = True
            raise item
        return item

    async def send_text(self, text: str) -> None:
        if self.gone:
            raise WebSocketDisconnect(code=1000)
        message = json.loads(text)
        self.sent.append(message)
        self.wire.append(("telephony", message))

    async def close(self, code: int = 1000) -> None:
        self.close_calls += 1
        self.gone = True
        self.inbox.put_nowait(WebSocketDisconnect(code=code))


class FakeRealtimeSocket:
    """Mimics the parts of a websockets ClientConnection the realtime adapter uses."""

    def __init__(self, wire: list[tuple[str, dict]] | None = None) -> None:
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict] = []
        self.wire = wire if wire is not None else []
        self.close_calls = 0
        self.gone = False

    def feed(self, message: dict) -> None:
        self.inbox.put_nowait(json.dumps(message))

    def hang_up(self) -> None:
        self.inbox.put_nowait(ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True))

    def drop(self) -> None:
        self.inbox.put_nowait(ConnectionClosedError(None, None))

    async def recv(self) -> str:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            self.gone = True
            raise item
        return item

    async def send(self, text: str) -> None:
        if self.gone:
            raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)
        message = json.loads(text)
        self.sent.append(message)
        self.wire.append(("realtime", message))

    async def close(self) -> None:
        self.close_calls += 1
        self.gone = True
        self.inbox.put_nowait(ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True))


class FakeRealtimeConnector:
    """Hands out realtime connections backed by FakeRealtimeSocket.

    ``on_connect`` frames are queued on every new socket. ``push`` lets a test
    running in another thread feed the latest socket through its event loop.
    """

    def __init__(self, *, fail: bool = False, on_connect: list[dict] | None = None) -> None:
        self.fail = fail
        self.on_connect = on_connect or []
        self.secrets: list[str] = []
        self.sockets: list[FakeRealtimeSocket] = []
        self.loop: asyncio.AbstractEventLoop | None = None

    async def connect(self, client_secret: str, *, label: str | None = None) -> RealtimeConnection:
        self.secrets.append(client_secret)
        if self.fail:
            raise CallConnectionError("realtime unreachable")
        self.loop = asyncio.get_running_loop()
        socket = FakeRealtimeSocket()
        for message in self.on_connect:
            socket.feed(message)
        self.sockets.append(socket)
        return RealtimeConnection(socket, label=label)  # type: ignore[arg-type]

    def push(self, message: dict) -> None:
        assert self.loop is not None and self.sockets
        self.loop.call_soon_threadsafe(self.sockets[-1].feed, message)


def make_session(call_id: str = "CA1", *, strict_sends: bool = False):
    """Return (session, twilio socket, realtime socket, shared wire log)."""

    wire: list[tuple[str, dict]] = []
    twilio = FakeTwilioSocket(wire)
    realtime = FakeRealtimeSocket(wire)
    session = CallSession(
        call_id=call_id,
        telephony=TelephonyConnection(twilio, strict_sends=strict_sends, label=call_id),  # type: ignore[arg-type]
        realtime=RealtimeConnection(realtime, strict_sends=strict_sends, label=call_id),  # type: ignore[arg-type]
    )
    return session, twilio, realtime, wire


def start_frame(stream_sid: str = "SID1", call_sid: str = "CA1") -> dict:
    return {
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "accountSid": "AC1",
            "callSid": call_sid,
            "tracks": ["inbound"],
            "mediaFormat": {"encoding": "audio/x-mulaw", "sampleRate": 8000, "channels": 1},
            "customParameters": {"campaign": "spring"},
        },
    }


def session_created(session_id: str = "sess_1") -> dict:
    return {"type": "session.created", "event_id": "evt_1", "session": {"id": session_id, "voice": "alloy"}}


def media_frame(payload: str, track: str | None = "inbound") -> dict:
    media: dict[str, Any] = {"payload": payload}
    if track is not None:
        media["track"] = track
    return {"event": "media", "streamSid": "SID1", "media": media}


def audio_delta(payload: str, response_id: str | None = None) -> dict:
    message: dict[str, Any] = {"type": "response.audio.delta", "delta": payload}
    if response_id is not None:
        message["response_id"] = response_id
    return message


def frame(message: dict) -> str:
    return json.dumps(message)
