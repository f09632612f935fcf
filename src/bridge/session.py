"""Per-call state shared by the coordinator, the relay and the lifecycle."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone

from realtime.connection import RealtimeConnection
from telephony.connection import TelephonyConnection


class CallState(str, enum.Enum):
    INIT = "init"
    WAITING = "waiting"
    ACTIVE = "active"
    CLOSED = "closed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class CallSession:
    """One live call: a telephony connection paired with a realtime connection.

    Only the owning CallLifecycle creates sessions. ACTIVE and CLOSED are each
    entered at most once; the transition methods return whether this call
    performed the transition.
    """

    call_id: str
    telephony: TelephonyConnection
    realtime: RealtimeConnection
    state: CallState = CallState.INIT
    created_at: datetime = field(default_factory=_now)
    activated_at: datetime | None = None
    closed_at: datetime | None = None
    close_reason: str | None = None

    @property
    def stream_sid(self) -> str:
        return self.telephony.stream_sid

    @property
    def is_active(self) -> bool:
        return self.state is CallState.ACTIVE

    @property
    def is_closed(self) -> bool:
        return self.state is CallState.CLOSED

    def begin_bootstrap(self) -> None:
        if self.state is CallState.INIT:
            self.state = CallState.WAITING

    def activate(self) -> bool:
        if self.state is not CallState.WAITING:
            return False
        # Raises StreamNotStartedError if the routing identifier is missing.
        _ = self.telephony.stream_sid
        self.state = CallState.ACTIVE
        self.activated_at = _now()
        return True

    def close(self, reason: str) -> bool:
        if self.state is CallState.CLOSED:
            return False
        self.state = CallState.CLOSED
        self.closed_at = _now()
        self.close_reason = reason
        return True
