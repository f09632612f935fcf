from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from bridge.bootstrap import BootstrapCoordinator
from bridge.errors import BootstrapTimeoutError, CallConnectionError
from bridge.relay import AudioRelay, RelayPolicy
from bridge.session import CallSession
from realtime.protocol import ErrorEvent, ResponseCreate, SessionUpdate, SessionUpdatedEvent
from telephony.protocol import DtmfEvent, MarkEvent, StopEvent

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallOptions:
    """Per-call knobs, built once from settings and shared read-only."""

    greeting: ResponseCreate | None = None
    session_update: SessionUpdate | None = None
    bootstrap_timeout: float | None = 15.0
    policy: RelayPolicy = field(default_factory=RelayPolicy)


class CallLifecycle:
    """Owns one CallSession from socket accept to teardown.

    ``run`` drives both receive pumps and returns once the call is over. The
    first side to go away (peer close, connection error, Twilio ``stop``,
    bootstrap timeout) closes the other one. ``close`` is idempotent.
    """

    def __init__(self, session: CallSession, options: CallOptions | None = None) -> None:
        self.session = session
        self.options = options or CallOptions()
        self.coordinator = BootstrapCoordinator(
            session,
            greeting=self.options.greeting,
            session_update=self.options.session_update,
        )
        self.relay = AudioRelay(session, self.options.policy)
        self._tasks: list[asyncio.Task] = []
        self._teardown: asyncio.Future | None = None

    @property
    def call_id(self) -> str:
        return self.session.call_id

    async def run(self) -> None:
        session = self.session
        self.coordinator.attach()
        self.relay.attach()
        session.telephony.subscribe("stop", self._on_stream_stop)
        session.telephony.subscribe("dtmf", self._on_dtmf)
        session.telephony.subscribe("mark", self._on_mark)
        session.realtime.subscribe("error", self._on_realtime_error)
        session.realtime.subscribe("session.updated", self._on_session_updated)

        telephony_pump = asyncio.create_task(session.telephony.run(), name=f"{self.call_id}-telephony")
        realtime_pump = asyncio.create_task(session.realtime.run(), name=f"{self.call_id}-realtime")
        watchdog = asyncio.create_task(self._watch_bootstrap(), name=f"{self.call_id}-bootstrap")
        self._tasks = [telephony_pump, realtime_pump, watchdog]

        try:
            done, _pending = await asyncio.wait({telephony_pump, realtime_pump}, return_when=asyncio.FIRST_COMPLETED)
            await self.close("telephony closed" if telephony_pump in done else "realtime closed")
        finally:
            await self.close("relay stopped")
            await self._cancel_tasks()
            for task in self._tasks:
                self._log_task_result(task)
            self._log_summary()

    async def close(self, reason: str) -> bool:
        """Tear the call down once: mark CLOSED, then close both sockets."""

        if not self.session.close(reason):
            # Let a teardown started elsewhere finish before the caller moves on.
            if self._teardown is not None:
                await asyncio.shield(self._teardown)
            return False
        LOGGER.info("[%s] closing call: %s", self.call_id, reason)
        # Shielded so cancelling the task that asked for teardown cannot leave
        # one socket open.
        self._teardown = asyncio.ensure_future(self._close_connections())
        await asyncio.shield(self._teardown)
        return True

    async def _close_connections(self) -> None:
        # A stalled closing handshake on one side must not hold the other open.
        await asyncio.gather(self.session.realtime.close(), self.session.telephony.close())

    async def _watch_bootstrap(self) -> None:
        try:
            await self.coordinator.wait_active(self.options.bootstrap_timeout)
        except BootstrapTimeoutError as exc:
            LOGGER.error("[%s] bootstrap timed out: %s", self.call_id, exc.detail)
            await self.close("bootstrap timeout")

    async def _cancel_tasks(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

    def _log_task_result(self, task: asyncio.Task) -> None:
        if not task.done() or task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, CallConnectionError):
            LOGGER.error("[%s] connection lost: %s", self.call_id, exc.detail)
        else:
            LOGGER.error("[%s] task %s crashed", self.call_id, task.get_name(), exc_info=exc)

    def _log_summary(self) -> None:
        stats = self.relay.stats
        LOGGER.info(
            "[%s] call ended (%s): caller_frames=%s agent_frames=%s interruptions=%s stale_dropped=%s "
            "dropped_sends=%s/%s",
            self.call_id,
            self.session.close_reason,
            stats.caller_frames,
            stats.agent_frames,
            stats.interruptions,
            stats.stale_deltas_dropped,
            self.session.telephony.stats.dropped_sends,
            self.session.realtime.stats.dropped_sends,
        )

    async def _on_stream_stop(self, event: StopEvent) -> None:
        await self.close("telephony stream stopped")

    async def _on_dtmf(self, event: DtmfEvent) -> None:
        LOGGER.info("[%s] dtmf digit=%s", self.call_id, event.dtmf.digit)

    async def _on_mark(self, event: MarkEvent) -> None:
        LOGGER.debug("[%s] playback mark %s reached", self.call_id, event.mark.name)

    async def _on_session_updated(self, event: SessionUpdatedEvent) -> None:
        LOGGER.debug("[%s] realtime session updated voice=%s", self.call_id, event.session.voice)

    async def _on_realtime_error(self, event: ErrorEvent) -> None:
        error = event.error
        LOGGER.warning(
            "[%s] realtime error type=%s code=%s: %s",
            self.call_id,
            error.type,
            error.code,
            error.message,
        )
