"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    active_calls: int


class ActiveCallResponse(BaseModel):
    call_id: str
    stream_sid: str | None = Field(description="Known once Twilio sent the start event.")
    state: str
    created_at: datetime
    activated_at: datetime | None
    caller_frames: int
    agent_frames: int
    interruptions: int


class CallStatusEventResponse(BaseModel):
    call_sid: str
    status: str
    attributes: dict[str, Any]
    created_at: datetime


class OutboundCallRequest(BaseModel):
    to_number: str = Field(description="E.164 phone number, e.g. +4179...")


class OutboundCallResponse(BaseModel):
    call_sid: str
    to_number: str
