from __future__ import annotations

import logging
from dataclasses import dataclass

from bridge.session import CallSession
from realtime.protocol import InputAudioBufferAppend, InputAudioBufferClear, ResponseAudioDeltaEvent, SpeechStartedEvent
from telephony.protocol import ClearAction, MediaAction, MediaEvent, OutboundMedia

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayPolicy:
    # Whether barge-in also discards uncommitted caller audio on the AI side.
    clear_ai_buffer_on_barge_in: bool = True
    # Whether deltas of an interrupted response are dropped when they arrive late.
    drop_stale_deltas: bool = True


@dataclass(slots=True)
class RelayStats:
    caller_frames: int = 0
    agent_frames: int = 0
    interruptions: int = 0
    stale_deltas_dropped: int = 0
    # Bumped once per interruption.
    generation: int = 0


class AudioRelay:
    """Forwards audio between the caller and the agent once the call is ACTIVE.

    Caller media frames become ``input_audio_buffer.append`` actions and agent
    audio deltas become Twilio ``media`` actions, one for one, with the base64
    payload passed through untouched. Both sides were negotiated to the same
    codec, so nothing is decoded here.

    Barge-in: when the agent side reports the caller started speaking, the AI
    input buffer is cleared first and the Twilio playback buffer second.
    Clearing the agent first keeps it from producing more audio after Twilio
    already dropped what was queued.

    Deltas still in flight when a clear goes out belong to the interrupted
    response. Every interruption remembers the response that was playing and
    later deltas carrying that ``response_id`` are dropped. ``generation``
    only counts interruptions; it is reported, not used for filtering.
    """

    def __init__(self, session: CallSession, policy: RelayPolicy | None = None) -> None:
        self._session = session
        self._policy = policy or RelayPolicy()
        self._playing_response_id: str | None = None
        self._interrupted_responses: set[str] = set()
        self.stats = RelayStats()

    @property
    def generation(self) -> int:
        return self.stats.generation

    def attach(self) -> None:
        self._session.telephony.subscribe("media", self._on_caller_media)
        self._session.realtime.subscribe("response.audio.delta", self._on_agent_audio)
        self._session.realtime.subscribe("input_audio_buffer.speech_started", self._on_speech_started)

    async def _on_caller_media(self, event: MediaEvent) -> None:
        if not self._session.is_active:
            return
        track = event.media.track
        if track is not None and track != "inbound":
            return
        self.stats.caller_frames += 1
        await self._session.realtime.send(InputAudioBufferAppend(audio=event.media.payload))

    async def _on_agent_audio(self, event: ResponseAudioDeltaEvent) -> None:
        if not self._session.is_active:
            return
        response_id = event.response_id
        if response_id is not None:
            if self._policy.drop_stale_deltas and response_id in self._interrupted_responses:
                self.stats.stale_deltas_dropped += 1
                return
            self._playing_response_id = response_id
        self.stats.agent_frames += 1
        await self._session.telephony.send(
            MediaAction(stream_sid=self._session.stream_sid, media=OutboundMedia(payload=event.delta))
        )

    async def _on_speech_started(self, event: SpeechStartedEvent) -> None:
        if not self._session.is_active:
            return
        self.stats.interruptions += 1
        self.stats.generation += 1
        if self._playing_response_id is not None:
            self._interrupted_responses.add(self._playing_response_id)
            self._playing_response_id = None
        LOGGER.info(
            "[%s] caller started speaking (item=%s, generation=%s)",
            self._session.call_id,
            event.item_id,
            self.stats.generation,
        )

        if self._policy.clear_ai_buffer_on_barge_in:
            await self._session.realtime.send(InputAudioBufferClear())
        await self._session.telephony.send(ClearAction(stream_sid=self._session.stream_sid))
