from __future__ import annotations

import asyncio
import logging
from typing import ClassVar
from urllib.parse import urlencode

from pydantic import BaseModel
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, InvalidHandshake, InvalidURI

from bridge.connection import JsonSocketConnection
from bridge.errors import CallConnectionError
from realtime.protocol import (
    REALTIME_EVENT_TAGS,
    RealtimeAction,
    RealtimeEvent,
    parse_realtime_event,
    serialize_realtime_action,
)

LOGGER = logging.getLogger(__name__)


class RealtimeConnection(JsonSocketConnection[RealtimeEvent, RealtimeAction]):
    """Typed adapter over an OpenAI Realtime websocket."""

    peer: ClassVar[str] = "realtime"
    event_tags: ClassVar[frozenset[str]] = REALTIME_EVENT_TAGS
    transport_closed_errors: ClassVar[tuple[type[BaseException], ...]] = (ConnectionClosed,)

    def __init__(self, websocket: ClientConnection, *, strict_sends: bool = False, label: str | None = None) -> None:
        super().__init__(strict_sends=strict_sends, label=label)
        self._websocket = websocket

    def decode(self, raw: str | bytes) -> RealtimeEvent:
        return parse_realtime_event(raw)

    def encode(self, action: RealtimeAction) -> str:
        return serialize_realtime_action(action)

    @staticmethod
    def tag_of(message: BaseModel) -> str:
        return message.type  # type: ignore[attr-defined]

    async def _send_text(self, text: str) -> None:
        await self._websocket.send(text)

    async def _receive(self) -> str | bytes | None:
        try:
            return await self._websocket.recv()
        except ConnectionClosedOK:
            return None
        except ConnectionClosed as exc:
            raise CallConnectionError(f"{self.label}: socket closed abnormally ({exc})") from exc

    async def _close_transport(self) -> None:
        await self._websocket.close()


class RealtimeConnector:
    """Opens realtime sockets authenticated with a negotiated session credential.

    The credential is the ephemeral client secret minted when the call came
    in; it ties the socket to the voice, instructions and audio format chosen
    at that point. The connector never negotiates sessions itself.
    """

    def __init__(
        self,
        *,
        url: str,
        model: str,
        open_timeout: float = 10.0,
        strict_sends: bool = False,
    ) -> None:
        self._url = url
        self._model = model
        self._open_timeout = open_timeout
        self._strict_sends = strict_sends

    @property
    def endpoint(self) -> str:
        return f"{self._url}?{urlencode({'model': self._model})}"

    async def connect(self, client_secret: str, *, label: str | None = None) -> RealtimeConnection:
        headers = [
            ("Authorization", f"Bearer {client_secret}"),
            ("OpenAI-Beta", "realtime=v1"),
        ]
        try:
            websocket = await connect(
                self.endpoint,
                additional_headers=headers,
                open_timeout=self._open_timeout,
                max_size=None,
                ping_interval=20,
                ping_timeout=20,
            )
        except (OSError, InvalidURI, InvalidHandshake, asyncio.TimeoutError) as exc:
            raise CallConnectionError(f"Could not open realtime socket: {exc}") from exc

        LOGGER.info("[%s] realtime socket open model=%s", label or "realtime", self._model)
        return RealtimeConnection(websocket, strict_sends=self._strict_sends, label=label)
