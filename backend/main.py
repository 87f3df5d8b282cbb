"""
LAN Service Discovery — FastAPI application entry point.

Starts the service discoverer and/or announcer on startup, serves the REST
API and a WebSocket endpoint that pushes changes of the discovered set.
"""

import asyncio
import logging
import signal
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from api.routes import init_routes, router
from api.websocket import ConnectionManager
from config import (
    ANNOUNCE_PORT,
    ANNOUNCE_SERVICE,
    API_HOST,
    API_PORT,
    DISCOVER_SERVICE,
    MAX_IDLE,
    MAX_SERVICES,
    MULTICAST_ADDRESS,
    MULTICAST_PORT,
)
from discovery.announcer import ServiceAnnouncer
from discovery.errors import TransportError
from discovery.service import ServiceDiscoverer

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

ws_manager = ConnectionManager()


def request_shutdown() -> None:
    """Ask the server to shut down gracefully, as on Ctrl+C."""
    signal.raise_signal(signal.SIGTERM)


async def watch_discoverer(discoverer: ServiceDiscoverer) -> None:
    """Shut the app down if the discoverer loses its transport."""
    try:
        await discoverer.wait_closed()
    except TransportError as e:
        logger.error(f"Discovery failed, shutting down: {e}")
        request_shutdown()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop the discovery services."""
    logger.info("Starting LAN service discovery...")
    loop = asyncio.get_running_loop()

    discoverer = None
    announcer = None
    watcher = None
    if DISCOVER_SERVICE:
        discoverer = ServiceDiscoverer(
            loop,
            DISCOVER_SERVICE,
            ws_manager.services_changed,
            max_idle=MAX_IDLE,
            max_services=MAX_SERVICES,
            multicast_port=MULTICAST_PORT,
            multicast_address=MULTICAST_ADDRESS,
        )
    if ANNOUNCE_SERVICE:
        announcer = ServiceAnnouncer(
            loop,
            ANNOUNCE_SERVICE,
            ANNOUNCE_PORT,
            multicast_port=MULTICAST_PORT,
            multicast_address=MULTICAST_ADDRESS,
        )
    if discoverer is None and announcer is None:
        logger.warning(
            "Neither LSD_DISCOVER_SERVICE nor LSD_ANNOUNCE_SERVICE is set, nothing to do"
        )

    init_routes(discoverer, announcer)
    app.state.discoverer = discoverer
    app.state.announcer = announcer

    try:
        if discoverer is not None:
            await discoverer.start()
            watcher = asyncio.create_task(watch_discoverer(discoverer))
        if announcer is not None:
            await announcer.start()

        logger.info(f"LAN service discovery ready — API: {API_HOST}:{API_PORT}")

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down LAN service discovery...")
        if watcher is not None:
            watcher.cancel()
        if announcer is not None:
            await announcer.stop()
        if discoverer is not None:
            await discoverer.stop()


# --- FastAPI app ---
app = FastAPI(
    title="LAN Service Discovery",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await ws_manager.connect(websocket)
    try:
        while True:
            # Keep the connection alive; we don't expect client messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        await ws_manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
