from __future__ import annotations

import asyncio
import logging

from bridge.errors import CallCapacityError, DuplicateCallError
from bridge.lifecycle import CallLifecycle

LOGGER = logging.getLogger(__name__)


class SessionRegistry:
    """Live calls keyed by call id.

    One instance lives on the application state. Each entry is owned by the
    websocket handler that registered it; the registry only indexes them, so
    calls never share mutable state with each other.
    """

    def __init__(self, *, max_calls: int | None = None) -> None:
        self._max_calls = max_calls
        self._calls: dict[str, CallLifecycle] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def has_capacity(self) -> bool:
        return self._max_calls is None or len(self._calls) < self._max_calls

    def register(self, lifecycle: CallLifecycle) -> None:
        call_id = lifecycle.call_id
        if call_id in self._calls:
            raise DuplicateCallError(f"Call {call_id} is already being relayed.")
        if not self.has_capacity():
            raise CallCapacityError(f"Refusing call {call_id}: {self._max_calls} calls already active.")
        self._calls[call_id] = lifecycle
        LOGGER.info("[%s] registered (%s active)", call_id, len(self._calls))

    def unregister(self, call_id: str, lifecycle: CallLifecycle | None = None) -> None:
        current = self._calls.get(call_id)
        if current is None or (lifecycle is not None and current is not lifecycle):
            return
        del self._calls[call_id]
        LOGGER.info("[%s] unregistered (%s active)", call_id, len(self._calls))

    def get(self, call_id: str) -> CallLifecycle | None:
        return self._calls.get(call_id)

    def active(self) -> list[CallLifecycle]:
        return list(self._calls.values())

    async def close_all(self, reason: str = "server shutdown") -> None:
        calls = self.active()
        if calls:
            LOGGER.info("Closing %s active call(s): %s", len(calls), reason)
        await asyncio.gather(*(call.close(reason) for call in calls))
