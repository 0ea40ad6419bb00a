"""FastAPI application setup for Chat Memory."""

from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_memory.api.dependencies import init_components, shutdown_components
from chat_memory.api.routes_admin import router as admin_router
from chat_memory.api.routes_conversations import router as conversations_router
from chat_memory.api.routes_ingest import router as ingest_router
from chat_memory.api.routes_profile import router as profile_router
from chat_memory.api.routes_retrieve import router as retrieve_router
from chat_memory.core.errors import (
    ConversationNotFoundError,
    IngestValidationError,
    ProfileNotFoundError,
)
from chat_memory.core.logging import configure_logging
from chat_memory.core.metrics import REQUEST_COUNT, REQUEST_LATENCY

configure_logging()

app = FastAPI(
    title="Chat Memory",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(ingest_router, prefix="/rag/ingest", tags=["ingest"])
app.include_router(retrieve_router, prefix="/rag", tags=["retrieve"])
app.include_router(profile_router, prefix="/rag", tags=["profile"])
app.include_router(conversations_router, prefix="/conversations", tags=["conversations"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


@app.exception_handler(IngestValidationError)
async def validation_error(_: Request, exc: IngestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc), "missing": exc.missing})


@app.exception_handler(ProfileNotFoundError)
@app.exception_handler(ConversationNotFoundError)
async def not_found(_: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.on_event("startup")
async def startup() -> None:
    """Build the shared components once."""
    init_components()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Stop the eviction sweeper and drain background workers."""
    shutdown_components()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
