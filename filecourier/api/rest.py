"""
Progress Event API

Design Decision: API Framework
==============================

Options Considered:
1. FastAPI - Modern, async, WebSocket routes built in
2. Bare websockets server - Fewer layers, but no HTTP status endpoint
3. aiohttp - Async, but a second web stack next to FastAPI

Decision: FastAPI on uvicorn
- Native async support (shares the loop with the transfer servers)
- WebSocket endpoint for pushing events, plain GET for health checks

API Design:
- GET /   service info and current subscriber count
- WS  /ws one text message per transfer event until the client leaves
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from .events import EventBus, Subscription, encode_event
from .. import __version__

logger = logging.getLogger(__name__)


class ServiceInfo(BaseModel):
    """Root endpoint response."""
    name: str
    version: str
    subscribers: int
    events_published: int


# === API Creation ===

def create_app(bus: EventBus) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        bus: EventBus whose events are pushed to /ws clients

    Returns:
        FastAPI application
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown."""
        logger.info("Event API starting...")
        yield
        logger.info("Event API stopping...")

    app = FastAPI(
        title="filecourier events",
        description="Live transfer events for monitoring clients",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.bus = bus

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # === Endpoints ===

    @app.get("/", response_model=ServiceInfo, tags=["General"])
    async def root():
        """API root - basic info."""
        return ServiceInfo(
            name="filecourier",
            version=__version__,
            subscribers=bus.subscriber_count,
            events_published=bus.published,
        )

    @app.websocket("/ws")
    async def events_socket(websocket: WebSocket):
        """Stream transfer events to one monitoring client."""
        await websocket.accept()
        subscription = bus.subscribe()
        logger.debug(f"Event client connected: {websocket.client}")

        receive_task = asyncio.create_task(_drain_client(websocket))
        send_task = asyncio.create_task(_forward_events(websocket, subscription))
        try:
            await asyncio.wait(
                {receive_task, send_task},
                return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (receive_task, send_task):
                task.cancel()
            await asyncio.gather(receive_task, send_task, return_exceptions=True)
            bus.unsubscribe(subscription)
            logger.debug(f"Event client disconnected: {websocket.client}")

    return app


async def _drain_client(websocket: WebSocket):
    """Read (and ignore) client messages until it disconnects."""
    try:
        while True:
            message = await websocket.receive()
            if message['type'] == 'websocket.disconnect':
                return
    except WebSocketDisconnect:
        return


async def _forward_events(websocket: WebSocket, subscription: Subscription):
    while True:
        event = await subscription.get()
        await websocket.send_text(encode_event(event))


class EventServer:
    """Runs the event API on uvicorn alongside the transfer servers."""

    def __init__(self, bus: EventBus, host: str = "0.0.0.0", port: int = 3030):
        self.bus = bus
        self.host = host
        self.port = port
        self._server = None
        self._task: Optional[asyncio.Task] = None

    async def start(self):
        """Start serving in a background task."""
        import uvicorn

        config = uvicorn.Config(
            create_app(self.bus),
            host=self.host,
            port=self.port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        logger.info(f"Event API at ws://{self.host}:{self.port}/ws")

    async def stop(self):
        """Ask uvicorn to exit and wait for it."""
        if self._server is None:
            return
        self._server.should_exit = True
        await self._task
        self._server = None
        self._task = None
