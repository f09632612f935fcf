"""Twilio REST access for placing outbound calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class TwilioConfig:
    account_sid: str
    auth_token: str
    from_number: str
    public_base_url: str

    @property
    def incoming_call_url(self) -> str:
        return f"{self.public_base_url}/api/twilio/incoming-call"

    @property
    def call_status_url(self) -> str:
        return f"{self.public_base_url}/api/twilio/call-status"


def get_twilio_config() -> TwilioConfig:
    settings = get_settings()
    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise ValueError("Twilio credentials are not configured")
    if not settings.twilio_from_number:
        raise ValueError("Twilio from-number is not configured")
    if not settings.public_base_url:
        raise ValueError("PUBLIC_BASE_URL is required for Twilio callbacks")

    return TwilioConfig(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_from_number,
        public_base_url=settings.public_base_url.rstrip("/"),
    )


def build_twilio_client(cfg: TwilioConfig):
    from twilio.rest import Client

    return Client(cfg.account_sid, cfg.auth_token)


async def place_outbound_call(client, cfg: TwilioConfig, to_number: str) -> str:
    """Dial ``to_number``; once answered Twilio fetches the incoming-call TwiML.

    The REST client is blocking, so the request runs in a worker thread to keep
    live media relays on the event loop unaffected.
    """

    call = await asyncio.to_thread(
        client.calls.create,
        to=to_number,
        from_=cfg.from_number,
        url=cfg.incoming_call_url,
        method="POST",
        status_callback=cfg.call_status_url,
        status_callback_method="POST",
        status_callback_event=["initiated", "ringing", "answered", "completed"],
    )
    LOGGER.info("Outbound call %s placed to %s", call.sid, to_number)
    return str(call.sid)
