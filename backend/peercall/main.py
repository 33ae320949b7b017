"""
Peercall Relay - Main Application

This is the entry point for the FastAPI relay service.
It handles:
- WebSocket connections for call signaling (/call-signaling)
- Presence REST endpoint (/api/presence)
- Health and Prometheus metrics endpoints
"""
from contextlib import asynccontextmanager
import logging
from datetime import datetime, UTC

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from peercall import __version__
from peercall.api import router as api_router
from peercall.api.websocket import router as ws_router
from peercall.config.settings import settings
from peercall.services.presence import presence_registry

# Configure logging
logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events using the modern FastAPI pattern.
    """
    # === STARTUP ===
    logger.info("🚀 Starting Peercall relay...")
    logger.info(f"✅ Signaling endpoint ready on port {settings.API_PORT}")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info(f"🛑 Shutting down relay ({presence_registry.count} connection(s) open)...")


app = FastAPI(
    title="Peercall Relay",
    description="Signaling relay and presence service for peer-to-peer calls",
    version=__version__,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"http://(localhost|127\.0\.0\.1)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST API routes
app.include_router(api_router, prefix="/api")

# Include WebSocket routes
app.include_router(ws_router)

# Prometheus metrics
app.mount("/metrics", make_asgi_app())


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Peercall Relay",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "online_users": presence_registry.count,
    }


def run():
    """Console entry point: serve the relay with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
