from __future__ import annotations

import asyncio
import logging

from bridge.errors import BootstrapTimeoutError
from bridge.session import CallSession
from realtime.protocol import ResponseCreate, SessionCreatedEvent, SessionUpdate
from telephony.protocol import StartEvent

LOGGER = logging.getLogger(__name__)


class BootstrapCoordinator:
    """Rendezvous between "stream started" and "realtime session created".

    The two signals arrive in any order. Each sets its flag once; repeats are
    ignored. The session becomes ACTIVE the moment both flags are set, and the
    greeting is requested exactly then.
    """

    def __init__(
        self,
        session: CallSession,
        *,
        greeting: ResponseCreate | None,
        session_update: SessionUpdate | None = None,
    ) -> None:
        self._session = session
        self._greeting = greeting
        self._session_update = session_update
        self._stream_ready = False
        self._realtime_ready = False
        self._activated = asyncio.Event()

    @property
    def stream_ready(self) -> bool:
        return self._stream_ready

    @property
    def realtime_ready(self) -> bool:
        return self._realtime_ready

    @property
    def activated(self) -> bool:
        return self._activated.is_set()

    def attach(self) -> None:
        self._session.telephony.subscribe("start", self._on_stream_start)
        self._session.realtime.subscribe("session.created", self._on_session_created)
        self._session.begin_bootstrap()

    async def wait_active(self, timeout: float | None) -> None:
        try:
            await asyncio.wait_for(self._activated.wait(), timeout)
        except asyncio.TimeoutError as exc:
            missing = [
                name
                for name, ready in (("telephony start", self._stream_ready), ("realtime session", self._realtime_ready))
                if not ready
            ]
            raise BootstrapTimeoutError(f"Still waiting for {' and '.join(missing)} after {timeout}s") from exc

    async def _on_stream_start(self, event: StartEvent) -> None:
        if self._stream_ready:
            LOGGER.warning("[%s] duplicate start event ignored", self._session.call_id)
            return
        self._stream_ready = True
        LOGGER.info("[%s] telephony ready stream=%s", self._session.call_id, event.start.stream_sid)
        await self._maybe_activate()

    async def _on_session_created(self, event: SessionCreatedEvent) -> None:
        if self._realtime_ready:
            LOGGER.warning("[%s] duplicate session.created ignored", self._session.call_id)
            return
        # Frames on one socket are handled in order, so a repeat cannot slip
        # in while the update is being sent.
        if self._session_update is not None:
            await self._session.realtime.send(self._session_update)
        self._realtime_ready = True
        LOGGER.info("[%s] realtime ready session=%s", self._session.call_id, event.session.id)
        await self._maybe_activate()

    async def _maybe_activate(self) -> None:
        if not (self._stream_ready and self._realtime_ready):
            return
        if not self._session.activate():
            return
        self._activated.set()
        LOGGER.info("[%s] call active, both sides ready", self._session.call_id)
        if self._greeting is not None:
            await self._session.realtime.send(self._greeting)
