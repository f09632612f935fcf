"""Twilio Media Streams wire protocol.

Inbound frames are tagged by ``event``: connected, start, media, dtmf, mark,
stop. Outbound actions are clear, media and mark. Wire names are camelCase.
https://www.twilio.com/docs/voice/media-streams/websocket-messages
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from bridge.errors import ProtocolError


class TwilioModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ========================================
# Inbound events
# ========================================


class MediaFormat(TwilioModel):
    encoding: str = "audio/x-mulaw"
    sample_rate: int = 8000
    channels: int = 1


class StreamStart(TwilioModel):
    stream_sid: str
    account_sid: str | None = None
    call_sid: str | None = None
    tracks: list[str] = Field(default_factory=list)
    media_format: MediaFormat = Field(default_factory=MediaFormat)
    custom_parameters: dict[str, Any] = Field(default_factory=dict)


class InboundMedia(TwilioModel):
    payload: str
    track: str | None = None
    chunk: str | None = None
    timestamp: str | None = None


class DtmfDigit(TwilioModel):
    digit: str
    track: str | None = None


class MarkName(TwilioModel):
    name: str


class StreamStop(TwilioModel):
    account_sid: str | None = None
    call_sid: str | None = None


class ConnectedEvent(TwilioModel):
    event: Literal["connected"]
    protocol: str | None = None
    version: str | None = None


class StartEvent(TwilioModel):
    event: Literal["start"]
    sequence_number: int | None = None
    stream_sid: str | None = None
    start: StreamStart


class MediaEvent(TwilioModel):
    event: Literal["media"]
    sequence_number: int | None = None
    stream_sid: str | None = None
    media: InboundMedia


class DtmfEvent(TwilioModel):
    event: Literal["dtmf"]
    sequence_number: int | None = None
    stream_sid: str | None = None
    dtmf: DtmfDigit


class MarkEvent(TwilioModel):
    event: Literal["mark"]
    sequence_number: int | None = None
    stream_sid: str | None = None
    mark: MarkName


class StopEvent(TwilioModel):
    event: Literal["stop"]
    sequence_number: int | None = None
    stream_sid: str | None = None
    stop: StreamStop = Field(default_factory=StreamStop)


TelephonyEvent = Annotated[
    Union[ConnectedEvent, StartEvent, MediaEvent, DtmfEvent, MarkEvent, StopEvent],
    Field(discriminator="event"),
]

TELEPHONY_EVENT_TAGS: frozenset[str] = frozenset({"connected", "start", "media", "dtmf", "mark", "stop"})


# ========================================
# Outbound actions
# ========================================


class OutboundMedia(TwilioModel):
    payload: str


class ClearAction(TwilioModel):
    event: Literal["clear"] = "clear"
    stream_sid: str


class MediaAction(TwilioModel):
    event: Literal["media"] = "media"
    stream_sid: str
    media: OutboundMedia


class MarkAction(TwilioModel):
    event: Literal["mark"] = "mark"
    stream_sid: str
    mark: MarkName


TelephonyAction = Union[ClearAction, MediaAction, MarkAction]


_EVENT_ADAPTER: TypeAdapter[TelephonyEvent] = TypeAdapter(TelephonyEvent)


def parse_telephony_event(raw: str | bytes) -> TelephonyEvent:
    """Decode one Media Streams frame into its typed event."""

    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Frame is not a JSON object")

    tag = message.get("event")
    if tag not in TELEPHONY_EVENT_TAGS:
        raise ProtocolError(f"Unrecognized telephony event {tag!r}", tag=tag if isinstance(tag, str) else None)
    try:
        return _EVENT_ADAPTER.validate_python(message)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed {tag} frame: {exc.errors()[0]['msg']}", tag=tag) from exc


def serialize_telephony_action(action: TelephonyAction) -> str:
    return action.model_dump_json(by_alias=True, exclude_none=True)
