"""Shared plumbing for the typed JSON socket adapters."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

from bridge.errors import CallConnectionError, ProtocolError, SendOnClosedConnectionError

LOGGER = logging.getLogger(__name__)

EventT = TypeVar("EventT", bound=BaseModel)
ActionT = TypeVar("ActionT", bound=BaseModel)
EventHandler = Callable[[Any], Awaitable[None]]


@dataclass(slots=True)
class ConnectionStats:
    frames_received: int = 0
    frames_discarded: int = 0
    actions_sent: int = 0
    dropped_sends: int = 0


class JsonSocketConnection(ABC, Generic[EventT, ActionT]):
    """Typed wrapper over one JSON-framed websocket.

    Subclasses provide the protocol codec and the raw transport calls. Inbound
    frames are decoded into tagged events and handed to the subscribers of
    that tag in arrival order. Handlers are awaited one after another, so all
    handlers of a frame finish before the next frame is read.
    """

    peer: ClassVar[str] = "peer"
    event_tags: ClassVar[frozenset[str]] = frozenset()
    # Exceptions the transport raises when the socket is already gone.
    transport_closed_errors: ClassVar[tuple[type[BaseException], ...]] = ()

    def __init__(self, *, strict_sends: bool = False, label: str | None = None) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._closed = False
        self._strict_sends = strict_sends
        self.label = label or self.peer
        self.stats = ConnectionStats()

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, tag: str, handler: EventHandler) -> None:
        """Register ``handler`` for every inbound event tagged ``tag``."""

        if tag not in self.event_tags:
            raise ValueError(f"Unknown {self.peer} event tag: {tag!r}")
        self._handlers[tag].append(handler)

    async def dispatch(self, raw: str | bytes) -> None:
        """Decode one inbound frame and run its handlers."""

        self.stats.frames_received += 1
        try:
            event = self.decode(raw)
        except ProtocolError as exc:
            self.stats.frames_discarded += 1
            if exc.tag in self.event_tags:
                LOGGER.warning("[%s] discarding malformed %s frame: %s", self.label, exc.tag, exc.detail)
            else:
                LOGGER.debug("[%s] discarding frame: %s", self.label, exc.detail)
            return

        self._on_event(event)
        for handler in list(self._handlers.get(self.tag_of(event), ())):
            await handler(event)

    async def send(self, action: ActionT) -> bool:
        """Serialize and transmit ``action``.

        Returns False when the connection is already closed, unless the
        connection was built with ``strict_sends`` in which case
        SendOnClosedConnectionError is raised.
        """

        if self._closed:
            return self._reject(action, "connection closed")
        try:
            await self._send_text(self.encode(action))
        except self.transport_closed_errors as exc:
            self._closed = True
            return self._reject(action, f"transport closed ({type(exc).__name__})")
        self.stats.actions_sent += 1
        return True

    async def run(self) -> None:
        """Read frames until the socket closes.

        Returns on an orderly close; raises CallConnectionError when the peer
        drops the connection abnormally.
        """

        try:
            while not self._closed:
                try:
                    raw = await self._receive()
                except CallConnectionError:
                    if self._closed:
                        break
                    raise
                if raw is None:
                    LOGGER.info("[%s] socket closed by peer", self.label)
                    break
                await self.dispatch(raw)
        finally:
            self._closed = True

    async def close(self) -> None:
        """Close the underlying socket. Safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        try:
            await self._close_transport()
        except self.transport_closed_errors:
            LOGGER.debug("[%s] socket was already closed", self.label)

    def _reject(self, action: ActionT, reason: str) -> bool:
        tag = self.tag_of(action)
        if self._strict_sends:
            raise SendOnClosedConnectionError(f"{self.label}: cannot send {tag}, {reason}")
        self.stats.dropped_sends += 1
        LOGGER.warning("[%s] dropped %s action: %s", self.label, tag, reason)
        return False

    def _on_event(self, event: EventT) -> None:
        """Hook run for every decoded event before its handlers."""

    @abstractmethod
    def decode(self, raw: str | bytes) -> EventT:
        """Parse a frame, raising ProtocolError for unknown or malformed ones."""

    @abstractmethod
    def encode(self, action: ActionT) -> str:
        """Serialize an outbound action."""

    @staticmethod
    @abstractmethod
    def tag_of(message: BaseModel) -> str:
        """Return the protocol tag of an event or action."""

    @abstractmethod
    async def _send_text(self, text: str) -> None: ...

    @abstractmethod
    async def _receive(self) -> str | bytes | None:
        """Return the next frame, or None once the peer closed cleanly."""

    @abstractmethod
    async def _close_transport(self) -> None: ...
