"""Persistence for Twilio call-status callbacks."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select

from db.base import AsyncSessionFactory
from db.models import CallStatusEvent


class CallEventRepository:
    """Async repository for the call-status log."""

    async def record_status(
        self,
        call_sid: str,
        status: str,
        *,
        attributes: dict[str, Any] | None = None,
    ) -> CallStatusEvent:
        async with AsyncSessionFactory() as session:
            event = CallStatusEvent(call_sid=call_sid, status=status, attributes=attributes or {})
            session.add(event)
            await session.commit()
            await session.refresh(event)
            return event

    async def list_status_events(self, call_sid: str) -> list[CallStatusEvent]:
        async with AsyncSessionFactory() as session:
            query = (
                select(CallStatusEvent)
                .where(CallStatusEvent.call_sid == call_sid)
                .order_by(CallStatusEvent.created_at, CallStatusEvent.id)
            )
            result = await session.execute(query)
            return list(result.scalars().all())
