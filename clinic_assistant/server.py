"""FastAPI server for the clinic assistant.

Run with:
    uvicorn clinic_assistant.server:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from clinic_assistant.agent import ClinicAssistant
from clinic_assistant.api.rate_limit import RateLimiter
from clinic_assistant.api.routes import router
from clinic_assistant.config import (
    CHAT_RATE_LIMIT_PER_MINUTE,
    CORS_ORIGINS,
    GUEST_RATE_LIMIT_PER_MINUTE,
    SERVER_HOST,
    SERVER_PORT,
)
from clinic_assistant.database import create_db_engine
from clinic_assistant.services.audit import AuditSink
from clinic_assistant.services.clinic_client import get_clinic_client
from clinic_assistant.services.history import ChatHistoryService
from clinic_assistant.services.metrics import metrics
from clinic_assistant.tools.executor import ToolExecutor

# ── Logging ──────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan: initialise / tear-down shared resources ────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start-up: open the database, wire the executor and build the assistant once."""
    engine = create_db_engine()
    history = ChatHistoryService(engine)
    clinic_client = get_clinic_client()
    executor = ToolExecutor(clinic_client, audit=AuditSink(engine))

    logger.info("Building clinic assistant…")
    application.state.history = history
    application.state.assistant = ClinicAssistant(history, executor)
    application.state.chat_limiter = RateLimiter(CHAT_RATE_LIMIT_PER_MINUTE)
    application.state.guest_limiter = RateLimiter(GUEST_RATE_LIMIT_PER_MINUTE)
    logger.info("Assistant ready.")
    yield
    clinic_client.close()
    metrics.flush()
    engine.dispose()


# ── FastAPI application ──────────────────────────────────────────────
app = FastAPI(
    title="Clinic Assistant",
    description=(
        "Conversational assistant for a dental clinic: answers questions about "
        "appointments, patients, treatments and clinic hours within the caller's role."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Request-ID middleware ────────────────────────────────────────────
@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request ID (``X-Request-ID``) to every request for log correlation."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# ── Register routes ──────────────────────────────────────────────────
app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Clinic Assistant",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/health",
    }


if __name__ == "__main__":
    logger.info("Starting clinic assistant API on %s:%d", SERVER_HOST, SERVER_PORT)
    uvicorn.run(
        "clinic_assistant.server:app",
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=True,
    )
