"""OpenAI Realtime (beta) wire protocol.

Server events are tagged by ``type``. Only the events the relay cares about,
plus the ones a session routinely emits, are modelled; anything else is
reported as a ProtocolError and discarded by the connection.
https://platform.openai.com/docs/api-reference/realtime-server-events
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from bridge.errors import ProtocolError


class RealtimeModel(BaseModel):
    model_config = ConfigDict(extra="allow")


# ========================================
# Shared
# ========================================


class TurnDetection(RealtimeModel):
    type: str | None = None
    threshold: float | None = None
    prefix_padding_ms: int | None = None
    silence_duration_ms: int | None = None
    create_response: bool | None = None
    interrupt_response: bool | None = None


class SessionConfig(RealtimeModel):
    """Session descriptor as reported by the server and sent in session.update."""

    id: str | None = None
    model: str | None = None
    modalities: list[str] | None = None
    instructions: str | None = None
    voice: str | None = None
    input_audio_format: str | None = None
    output_audio_format: str | None = None
    turn_detection: TurnDetection | None = None
    temperature: float | None = None
    max_response_output_tokens: int | Literal["inf"] | None = None


class ResponseConfig(RealtimeModel):
    modalities: list[str] | None = None
    instructions: str | None = None
    voice: str | None = None
    output_audio_format: str | None = None
    temperature: float | None = None
    max_output_tokens: int | Literal["inf"] | None = None


class ErrorDetail(RealtimeModel):
    type: str | None = None
    code: str | None = None
    message: str | None = None
    param: str | None = None
    event_id: str | None = None


class ServerEvent(RealtimeModel):
    event_id: str | None = None


# ========================================
# Server events
# ========================================


class SessionCreatedEvent(ServerEvent):
    type: Literal["session.created"]
    session: SessionConfig = Field(default_factory=SessionConfig)


class SessionUpdatedEvent(ServerEvent):
    type: Literal["session.updated"]
    session: SessionConfig = Field(default_factory=SessionConfig)


class ResponseAudioDeltaEvent(ServerEvent):
    type: Literal["response.audio.delta"]
    delta: str
    response_id: str | None = None
    item_id: str | None = None
    output_index: int | None = None
    content_index: int | None = None


class ResponseAudioDoneEvent(ServerEvent):
    type: Literal["response.audio.done"]
    response_id: str | None = None
    item_id: str | None = None


class ResponseAudioTranscriptDeltaEvent(ServerEvent):
    type: Literal["response.audio_transcript.delta"]
    delta: str = ""
    response_id: str | None = None
    item_id: str | None = None


class ResponseAudioTranscriptDoneEvent(ServerEvent):
    type: Literal["response.audio_transcript.done"]
    transcript: str = ""
    response_id: str | None = None
    item_id: str | None = None


class ResponseCreatedEvent(ServerEvent):
    type: Literal["response.created"]
    response: dict[str, Any] = Field(default_factory=dict)


class ResponseDoneEvent(ServerEvent):
    type: Literal["response.done"]
    response: dict[str, Any] = Field(default_factory=dict)


class ResponseOutputItemAddedEvent(ServerEvent):
    type: Literal["response.output_item.added"]
    response_id: str | None = None
    output_index: int | None = None
    item: dict[str, Any] = Field(default_factory=dict)


class ResponseContentPartAddedEvent(ServerEvent):
    type: Literal["response.content_part.added"]
    response_id: str | None = None
    item_id: str | None = None
    part: dict[str, Any] = Field(default_factory=dict)


class ConversationItemCreatedEvent(ServerEvent):
    type: Literal["conversation.item.created"]
    previous_item_id: str | None = None
    item: dict[str, Any] = Field(default_factory=dict)


class InputAudioBufferCommittedEvent(ServerEvent):
    type: Literal["input_audio_buffer.committed"]
    previous_item_id: str | None = None
    item_id: str | None = None


class SpeechStartedEvent(ServerEvent):
    type: Literal["input_audio_buffer.speech_started"]
    item_id: str | None = None
    audio_start_ms: int | None = None


class SpeechStoppedEvent(ServerEvent):
    type: Literal["input_audio_buffer.speech_stopped"]
    item_id: str | None = None
    audio_end_ms: int | None = None


class RateLimitsUpdatedEvent(ServerEvent):
    type: Literal["rate_limits.updated"]
    rate_limits: list[dict[str, Any]] = Field(default_factory=list)


class ErrorEvent(ServerEvent):
    type: Literal["error"]
    error: ErrorDetail = Field(default_factory=ErrorDetail)


RealtimeEvent = Annotated[
    Union[
        SessionCreatedEvent,
        SessionUpdatedEvent,
        ResponseAudioDeltaEvent,
        ResponseAudioDoneEvent,
        ResponseAudioTranscriptDeltaEvent,
        ResponseAudioTranscriptDoneEvent,
        ResponseCreatedEvent,
        ResponseDoneEvent,
        ResponseOutputItemAddedEvent,
        ResponseContentPartAddedEvent,
        ConversationItemCreatedEvent,
        InputAudioBufferCommittedEvent,
        SpeechStartedEvent,
        SpeechStoppedEvent,
        RateLimitsUpdatedEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

REALTIME_EVENT_TAGS: frozenset[str] = frozenset(
    {
        "session.created",
        "session.updated",
        "response.audio.delta",
        "response.audio.done",
        "response.audio_transcript.delta",
        "response.audio_transcript.done",
        "response.created",
        "response.done",
        "response.output_item.added",
        "response.content_part.added",
        "conversation.item.created",
        "input_audio_buffer.committed",
        "input_audio_buffer.speech_started",
        "input_audio_buffer.speech_stopped",
        "rate_limits.updated",
        "error",
    }
)


# ========================================
# Client actions
# https://platform.openai.com/docs/api-reference/realtime-client-events
# ========================================


class ClientAction(RealtimeModel):
    event_id: str | None = None


class SessionUpdate(ClientAction):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class InputAudioBufferAppend(ClientAction):
    type: Literal["input_audio_buffer.append"] = "input_audio_buffer.append"
    audio: str


class InputAudioBufferClear(ClientAction):
    type: Literal["input_audio_buffer.clear"] = "input_audio_buffer.clear"


class InputAudioBufferCommit(ClientAction):
    type: Literal["input_audio_buffer.commit"] = "input_audio_buffer.commit"


class ResponseCreate(ClientAction):
    type: Literal["response.create"] = "response.create"
    response: ResponseConfig | None = None


class ResponseCancel(ClientAction):
    type: Literal["response.cancel"] = "response.cancel"
    response_id: str | None = None


class ConversationItemCreate(ClientAction):
    type: Literal["conversation.item.create"] = "conversation.item.create"
    previous_item_id: str | None = None
    item: dict[str, Any]


class ConversationItemTruncate(ClientAction):
    type: Literal["conversation.item.truncate"] = "conversation.item.truncate"
    item_id: str
    content_index: int = 0
    audio_end_ms: int


class ConversationItemDelete(ClientAction):
    type: Literal["conversation.item.delete"] = "conversation.item.delete"
    item_id: str


RealtimeAction = Union[
    SessionUpdate,
    InputAudioBufferAppend,
    InputAudioBufferClear,
    InputAudioBufferCommit,
    ResponseCreate,
    ResponseCancel,
    ConversationItemCreate,
    ConversationItemTruncate,
    ConversationItemDelete,
]


_EVENT_ADAPTER: TypeAdapter[RealtimeEvent] = TypeAdapter(RealtimeEvent)


def parse_realtime_event(raw: str | bytes) -> RealtimeEvent:
    """Decode one server event."""

    try:
        message = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"Frame is not JSON: {exc}") from exc
    if not isinstance(message, dict):
        raise ProtocolError("Frame is not a JSON object")

    tag = message.get("type")
    if tag not in REALTIME_EVENT_TAGS:
        raise ProtocolError(f"Unrecognized realtime event {tag!r}", tag=tag if isinstance(tag, str) else None)
    try:
        return _EVENT_ADAPTER.validate_python(message)
    except ValidationError as exc:
        raise ProtocolError(f"Malformed {tag} event: {exc.errors()[0]['msg']}", tag=tag) from exc


def serialize_realtime_action(action: RealtimeAction) -> str:
    return action.model_dump_json(exclude_none=True)
