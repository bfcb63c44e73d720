"""FastAPI entry-point exposing the agent host and orchestrator."""
from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from autoagents.api.orchestration import router as orchestration_router
from autoagents.api.routes import router as agents_router
from autoagents.runtime import get_config, get_host, get_orchestrator


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    # Startup: load recipes and auto-start agents
    await get_host().startup()
    yield
    # Shutdown: cancel schedules, then let spawned tasks finish
    await get_host().shutdown(get_config().shutdown_grace)
    await get_orchestrator().shutdown(get_config().shutdown_grace)


app = FastAPI(title="Auto Agents", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(orchestration_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
