"""sereno FastAPI application."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sereno.api import auth, chat, companions, emergency, health, ws
from sereno.core.config import settings
from sereno.core.notifications import notification_dispatcher, websocket_transport

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    websocket_transport.bind_loop(asyncio.get_running_loop())
    notification_dispatcher.start()
    try:
        yield
    finally:
        notification_dispatcher.stop()
        websocket_transport.bind_loop(None)


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(emergency.router)
app.include_router(companions.router)
app.include_router(chat.router)
app.include_router(ws.router)
