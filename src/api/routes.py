"""HTTP routes for service health and live call inspection."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_registry
from api.schemas import ActiveCallResponse, HealthResponse
from api.twilio_routes import router as twilio_router
from bridge.registry import SessionRegistry

router = APIRouter()
router.include_router(twilio_router)


@router.get("/health", response_model=HealthResponse)
async def health(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    return HealthResponse(active_calls=len(registry))


@router.get("/calls", response_model=list[ActiveCallResponse])
async def list_active_calls(registry: SessionRegistry = Depends(get_registry)) -> list[ActiveCallResponse]:
    calls = []
    for lifecycle in registry.active():
        session = lifecycle.session
        stats = lifecycle.relay.stats
        calls.append(
            ActiveCallResponse(
                call_id=session.call_id,
                stream_sid=session.stream_sid if session.telephony.started else None,
                state=session.state.value,
                created_at=session.created_at,
                activated_at=session.activated_at,
                caller_frames=stats.caller_frames,
                agent_frames=stats.agent_frames,
                interruptions=stats.interruptions,
            )
        )
    return calls
