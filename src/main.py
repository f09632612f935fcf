"""Entry point for the Twilio <-> OpenAI Realtime voice relay."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from api.routes import router as api_router
from bridge.registry import SessionRegistry
from config.settings import get_settings
from db.base import dispose_db, init_db


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    app.state.registry = SessionRegistry(max_calls=settings.max_concurrent_calls)
    try:
        yield
    finally:
        await app.state.registry.close_all()
        await dispose_db()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
for noisy in ("websockets", "httpx", "openai"):
    logging.getLogger(noisy).setLevel(logging.WARNING)

app = FastAPI(
    title="Voice Agent Relay",
    description="Relays Twilio Media Streams audio to an OpenAI Realtime voice agent.",
    lifespan=lifespan,
)
app.include_router(api_router, prefix="/api")
