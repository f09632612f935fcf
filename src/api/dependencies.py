"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException
from starlette.requests import HTTPConnection

from bridge.lifecycle import CallOptions
from bridge.registry import SessionRegistry
from bridge.relay import RelayPolicy
from config.settings import get_settings
from db.repository import CallEventRepository
from realtime.connection import RealtimeConnector
from realtime.profile import AgentProfile
from realtime.sessions import RealtimeSessionNegotiator


def get_registry(connection: HTTPConnection) -> SessionRegistry:
    # Created in the application lifespan; one per process, keyed by call.
    return connection.app.state.registry


@lru_cache(maxsize=1)
def get_agent_profile() -> AgentProfile:
    return AgentProfile.from_settings(get_settings())


@lru_cache(maxsize=1)
def _negotiator_factory() -> RealtimeSessionNegotiator:
    return RealtimeSessionNegotiator.from_api_key(get_settings().openai_api_key, get_agent_profile())


def get_session_negotiator() -> RealtimeSessionNegotiator:
    try:
        return _negotiator_factory()
    except ValueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@lru_cache(maxsize=1)
def get_realtime_connector() -> RealtimeConnector:
    settings = get_settings()
    return RealtimeConnector(
        url=settings.openai_realtime_url,
        model=settings.openai_realtime_model,
        open_timeout=settings.realtime_connect_timeout_seconds,
        strict_sends=settings.strict_sends,
    )


@lru_cache(maxsize=1)
def get_call_options() -> CallOptions:
    settings = get_settings()
    profile = get_agent_profile()
    return CallOptions(
        greeting=profile.greeting_request(),
        session_update=profile.session_update() if settings.realtime_send_session_update else None,
        bootstrap_timeout=settings.bootstrap_timeout_seconds,
        policy=RelayPolicy(
            clear_ai_buffer_on_barge_in=settings.clear_ai_buffer_on_barge_in,
            drop_stale_deltas=settings.drop_stale_deltas,
        ),
    )


def get_call_event_repository() -> CallEventRepository:
    return CallEventRepository()
