"""Exceptions raised by the call relay.

Kept free of transport imports so API layers can map them without pulling in
socket libraries.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Call relay error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class CallConnectionError(BridgeError):
    """A socket failed to open or closed abnormally. Fatal to the call."""

    status_code = 502
    default_detail = "Connection to call peer failed."


class ProtocolError(BridgeError):
    """A frame with an unknown or malformed tag. Logged and discarded."""

    status_code = 400
    default_detail = "Unrecognized protocol frame."

    def __init__(self, detail: str | None = None, *, tag: str | None = None) -> None:
        super().__init__(detail)
        self.tag = tag


class BootstrapTimeoutError(BridgeError):
    status_code = 504
    default_detail = "Call peers did not become ready in time."


class SendOnClosedConnectionError(BridgeError):
    status_code = 500
    default_detail = "Action sent on a closed connection."


class StreamNotStartedError(BridgeError):
    status_code = 409
    default_detail = "Media stream has not started yet."


class SessionNegotiationError(BridgeError):
    status_code = 502
    default_detail = "Realtime session negotiation failed."


class CallCapacityError(BridgeError):
    status_code = 503
    default_detail = "Maximum number of concurrent calls reached."


class DuplicateCallError(BridgeError):
    status_code = 409
    default_detail = "Call is already being relayed."
