"""Realtime session negotiation.

The incoming-call webhook mints an ephemeral session before Twilio opens the
media stream, so the socket handshake later only has to present the client
secret. Doing it up front keeps the post-answer delay short.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from openai import AsyncOpenAI, OpenAIError

from bridge.errors import SessionNegotiationError
from realtime.profile import AgentProfile

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NegotiatedSession:
    client_secret: str
    expires_at: int | None
    model: str
    voice: str
    audio_format: str


class RealtimeSessionNegotiator:
    """Creates realtime sessions through the OpenAI REST API."""

    def __init__(self, client: AsyncOpenAI, profile: AgentProfile) -> None:
        self._client = client
        self._profile = profile

    @classmethod
    def from_api_key(cls, api_key: str | None, profile: AgentProfile) -> RealtimeSessionNegotiator:
        if not api_key:
            raise ValueError("OPENAI_API_KEY must be configured to negotiate realtime sessions.")
        return cls(AsyncOpenAI(api_key=api_key), profile)

    async def negotiate(self) -> NegotiatedSession:
        profile = self._profile
        try:
            session = await self._client.beta.realtime.sessions.create(
                model=profile.model,
                voice=profile.voice,
                instructions=profile.instructions,
                modalities=["text", "audio"],
                input_audio_format=profile.audio_format,
                output_audio_format=profile.audio_format,
                turn_detection={"type": profile.turn_detection},
                temperature=profile.temperature,
            )
        except OpenAIError as exc:
            LOGGER.error("Realtime session negotiation failed: %s", exc)
            raise SessionNegotiationError(str(exc)) from exc

        secret = session.client_secret
        return NegotiatedSession(
            client_secret=secret.value,
            expires_at=secret.expires_at,
            model=profile.model,
            voice=profile.voice,
            audio_format=profile.audio_format,
        )
