"""Development relay server speaking the chat socket protocol"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket

from domain.settings import ChatSettings, configure_logging
from relay.handler import handle_relay_connection
from relay.hub import RelayHub
from relay.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

hub = RelayHub()
rate_limiter = RateLimiter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown"""
    logger.info("Relay server started")
    yield
    dropped = rate_limiter.cleanup_idle(max_idle_seconds=0)
    logger.info("Relay server shutdown complete (%d rate-limit entries dropped)", dropped)


app = FastAPI(lifespan=lifespan)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "connections": hub.get_connection_count(), "online": hub.online_user_ids()}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint that delegates to the relay handler"""
    await handle_relay_connection(websocket, hub, rate_limiter)


if __name__ == "__main__":
    settings = ChatSettings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(app, host="localhost", port=8765)
