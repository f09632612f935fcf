"""Agent persona and audio settings shared by negotiation and the relay."""

from __future__ import annotations

from dataclasses import dataclass

from config.settings import Settings
from prompts.loader import load_prompt
from realtime.protocol import ResponseConfig, ResponseCreate, SessionConfig, SessionUpdate, TurnDetection


@dataclass(frozen=True)
class AgentProfile:
    model: str
    voice: str
    instructions: str
    greeting: str
    audio_format: str = "g711_ulaw"
    turn_detection: str = "server_vad"
    temperature: float = 0.8

    @classmethod
    def from_settings(cls, settings: Settings) -> AgentProfile:
        return cls(
            model=settings.openai_realtime_model,
            voice=settings.openai_voice,
            instructions=settings.agent_instructions or load_prompt("instructions"),
            greeting=settings.agent_greeting or load_prompt("greeting"),
            audio_format=settings.openai_audio_format,
            turn_detection=settings.openai_turn_detection,
            temperature=settings.openai_temperature,
        )

    def session_config(self) -> SessionConfig:
        # Both directions use the telephony codec so audio passes through untouched.
        return SessionConfig(
            modalities=["text", "audio"],
            instructions=self.instructions,
            voice=self.voice,
            input_audio_format=self.audio_format,
            output_audio_format=self.audio_format,
            turn_detection=TurnDetection(type=self.turn_detection),
            temperature=self.temperature,
        )

    def session_update(self) -> SessionUpdate:
        return SessionUpdate(session=self.session_config())

    def greeting_request(self) -> ResponseCreate:
        return ResponseCreate(response=ResponseConfig(instructions=self.greeting))
