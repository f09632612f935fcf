from __future__ import annotations

import logging
from typing import Any, ClassVar

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from bridge.connection import JsonSocketConnection
from bridge.errors import CallConnectionError, StreamNotStartedError
from telephony.protocol import (
    TELEPHONY_EVENT_TAGS,
    MediaFormat,
    StartEvent,
    TelephonyAction,
    TelephonyEvent,
    parse_telephony_event,
    serialize_telephony_action,
)

LOGGER = logging.getLogger(__name__)

# 1005 is what Starlette reports when the peer sent no close code.
_NORMAL_CLOSE_CODES = frozenset({1000, 1001, 1005})


class TelephonyConnection(JsonSocketConnection[TelephonyEvent, TelephonyAction]):
    """Typed adapter over the Twilio Media Streams websocket.

    The stream routing identifier is captured from the ``start`` frame before
    any ``start`` subscriber runs. Outbound actions need it, so reading
    ``stream_sid`` earlier raises StreamNotStartedError.
    """

    peer: ClassVar[str] = "telephony"
    event_tags: ClassVar[frozenset[str]] = TELEPHONY_EVENT_TAGS
    transport_closed_errors: ClassVar[tuple[type[BaseException], ...]] = (WebSocketDisconnect, RuntimeError)

    def __init__(self, websocket: WebSocket, *, strict_sends: bool = False, label: str | None = None) -> None:
        super().__init__(strict_sends=strict_sends, label=label)
        self._websocket = websocket
        self._stream_sid: str | None = None
        self.call_sid: str | None = None
        self.media_format: MediaFormat | None = None
        self.custom_parameters: dict[str, Any] = {}

    @property
    def started(self) -> bool:
        return self._stream_sid is not None

    @property
    def stream_sid(self) -> str:
        if self._stream_sid is None:
            raise StreamNotStartedError(f"{self.label}: streamSid is only known after the start event")
        return self._stream_sid

    def decode(self, raw: str | bytes) -> TelephonyEvent:
        return parse_telephony_event(raw)

    def encode(self, action: TelephonyAction) -> str:
        return serialize_telephony_action(action)

    @staticmethod
    def tag_of(message: BaseModel) -> str:
        return message.event  # type: ignore[attr-defined]

    def _on_event(self, event: TelephonyEvent) -> None:
        if isinstance(event, StartEvent) and self._stream_sid is None:
            start = event.start
            self._stream_sid = start.stream_sid
            self.call_sid = start.call_sid
            self.media_format = start.media_format
            self.custom_parameters = dict(start.custom_parameters)
            LOGGER.info(
                "[%s] media stream started stream=%s encoding=%s rate=%s",
                self.label,
                start.stream_sid,
                start.media_format.encoding,
                start.media_format.sample_rate,
            )

    async def _send_text(self, text: str) -> None:
        await self._websocket.send_text(text)

    async def _receive(self) -> str | None:
        try:
            return await self._websocket.receive_text()
        except WebSocketDisconnect as exc:
            if exc.code in _NORMAL_CLOSE_CODES:
                return None
            raise CallConnectionError(f"{self.label}: socket closed abnormally (code {exc.code})") from exc
        except RuntimeError as exc:
            # Starlette refuses to receive once the socket is disconnected.
            if self.closed:
                return None
            raise CallConnectionError(f"{self.label}: {exc}") from exc

    async def _close_transport(self) -> None:
        await self._websocket.close()
