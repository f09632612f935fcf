"""Twilio Voice integration.

This module provides:
- Incoming-call webhook returning <Connect><Stream> TwiML.
- Call-status webhook (logged and persisted).
- The Media Streams websocket that relays audio to the realtime agent.
- Outbound call initiation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Annotated
from urllib.parse import quote
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, WebSocket
from sqlalchemy.exc import SQLAlchemyError
from twilio.base.exceptions import TwilioException

from api.dependencies import (
    get_call_event_repository,
    get_call_options,
    get_realtime_connector,
    get_registry,
    get_session_negotiator,
)
from api.schemas import CallStatusEventResponse, OutboundCallRequest, OutboundCallResponse
from bridge.errors import BridgeError, CallCapacityError, CallConnectionError, DuplicateCallError
from bridge.lifecycle import CallLifecycle, CallOptions
from bridge.registry import SessionRegistry
from bridge.session import CallSession
from config.settings import get_settings
from db.repository import CallEventRepository
from integrations.twilio_client import TwilioConfig, build_twilio_client, get_twilio_config, place_outbound_call
from realtime.connection import RealtimeConnector
from realtime.sessions import RealtimeSessionNegotiator
from telephony.connection import TelephonyConnection

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])

_FAILED_STATUSES = frozenset({"error", "failed"})
_STATUS_ATTRIBUTES = ("From", "To", "Direction", "CallDuration", "Timestamp", "SequenceNumber")


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _public_base_url(request: Request) -> str:
    settings = get_settings()
    if settings.public_base_url:
        return settings.public_base_url.rstrip("/")
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_BASE_URL.
    return str(request.base_url).rstrip("/")


def _media_stream_url(request: Request, *, call_sid: str, client_secret: str) -> str:
    base = _to_ws_url(_public_base_url(request))
    return f"{base}/api/twilio/media-stream/{quote(call_sid, safe='')}/{quote(client_secret, safe='')}"


def _twiml_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


@router.post("/incoming-call")
async def twilio_incoming_call(
    request: Request,
    negotiator: RealtimeSessionNegotiator = Depends(get_session_negotiator),
) -> Response:
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip() or f"local-{uuid.uuid4().hex}"
    LOGGER.info("incoming-call %s from %s to %s", call_sid, form.get("From"), form.get("To"))

    # The realtime session is created here rather than after the stream opens
    # to avoid an extra delay once the call is connected.
    try:
        negotiated = await negotiator.negotiate()
    except BridgeError as exc:
        LOGGER.error("incoming-call %s failed, realtime session unavailable: %s", call_sid, exc.detail)
        raise HTTPException(status_code=500, detail="Realtime session unavailable") from exc

    stream_url = _media_stream_url(request, call_sid=call_sid, client_secret=negotiated.client_secret)
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


@router.post("/call-status")
async def twilio_call_status(
    request: Request,
    repo: CallEventRepository = Depends(get_call_event_repository),
) -> Response:
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip() or "unknown"
    status = str(form.get("CallStatus") or "").strip() or "unknown"

    if status in _FAILED_STATUSES:
        LOGGER.error("call-status %s %s", call_sid, status)
    else:
        LOGGER.info("call-status %s %s", call_sid, status)

    attributes = {key: str(form[key]) for key in _STATUS_ATTRIBUTES if key in form}
    try:
        await repo.record_status(call_sid, status, attributes=attributes)
    except SQLAlchemyError:
        # Still answer 200 so Twilio does not retry the callback.
        LOGGER.exception("Could not persist call-status %s for %s", status, call_sid)

    return Response(status_code=200)


@router.get("/calls/{call_sid}/events", response_model=list[CallStatusEventResponse])
async def list_call_status_events(
    call_sid: str,
    repo: CallEventRepository = Depends(get_call_event_repository),
) -> list[CallStatusEventResponse]:
    events = await repo.list_status_events(call_sid)
    return [
        CallStatusEventResponse(
            call_sid=event.call_sid,
            status=event.status,
            attributes=event.attributes,
            created_at=event.created_at,
        )
        for event in events
    ]


@router.websocket("/media-stream/{call_sid}/{client_secret}")
async def twilio_media_stream(
    websocket: WebSocket,
    call_sid: str,
    client_secret: str,
    registry: SessionRegistry = Depends(get_registry),
    connector: RealtimeConnector = Depends(get_realtime_connector),
    options: CallOptions = Depends(get_call_options),
) -> None:
    await websocket.accept()
    telephony = TelephonyConnection(websocket, strict_sends=get_settings().strict_sends, label=call_sid)

    if call_sid in registry or not registry.has_capacity():
        LOGGER.warning("[%s] media stream refused (%s active)", call_sid, len(registry))
        await telephony.close()
        return

    # client_secret links the socket to the session negotiated in incoming-call.
    try:
        realtime = await connector.connect(client_secret, label=call_sid)
    except CallConnectionError as exc:
        LOGGER.error("[%s] %s", call_sid, exc.detail)
        await telephony.close()
        return

    lifecycle = CallLifecycle(CallSession(call_id=call_sid, telephony=telephony, realtime=realtime), options)
    try:
        registry.register(lifecycle)
    except (CallCapacityError, DuplicateCallError) as exc:
        LOGGER.warning("[%s] %s", call_sid, exc.detail)
        await lifecycle.close(exc.detail)
        return

    try:
        await lifecycle.run()
    finally:
        registry.unregister(call_sid, lifecycle)


def get_twilio_cfg() -> TwilioConfig:
    try:
        return get_twilio_config()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


def get_twilio_client(cfg: TwilioConfig = Depends(get_twilio_cfg)):
    return build_twilio_client(cfg)


@router.post("/calls", response_model=OutboundCallResponse)
async def create_outbound_call(
    payload: OutboundCallRequest,
    x_api_key: Annotated[str | None, Header()] = None,
    twilio_client=Depends(get_twilio_client),
    cfg: TwilioConfig = Depends(get_twilio_cfg),
) -> OutboundCallResponse:
    settings = get_settings()

    if settings.twilio_outbound_api_key and x_api_key != settings.twilio_outbound_api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        call_sid = await place_outbound_call(twilio_client, cfg, payload.to_number)
    except TwilioException as exc:
        LOGGER.exception("Outbound call to %s failed", payload.to_number)
        raise HTTPException(status_code=502, detail="Twilio rejected the call") from exc

    return OutboundCallResponse(call_sid=call_sid, to_number=payload.to_number)
