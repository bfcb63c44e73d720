"""HTTP API for spawning and collecting orchestration tasks."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from autoagents.core.errors import CollectTimeoutError, ExecutionFailure, UnknownBackendError
from autoagents.core.models import CollectResult
from autoagents.orchestration.coordinator import Coordinator
from autoagents.orchestration.orchestrator import Orchestrator
from autoagents.recipes.parser import parse_tools
from autoagents.runtime import get_coordinator, get_orchestrator, get_tool_catalog
from autoagents.services.tools import ToolCatalog, resolve_tools

logger = logging.getLogger(__name__)

router = APIRouter(tags=["orchestration"])


class SpawnRequest(BaseModel):
    backend: str = Field(..., description="Execution backend identifier")
    prompt: str = Field(..., description="Instructions for the sub-agent")
    persona: str = ""
    tools: List[str] = Field(
        default_factory=list,
        description="Capability names, or \"local\" for every registered capability",
    )


class SpawnResponse(BaseModel):
    task_id: str
    coordination_key: str
    tools: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class OutcomeResponse(BaseModel):
    backend: str
    status: str
    output: Optional[str] = None
    error: Optional[str] = None


class CollectResponse(BaseModel):
    coordination_key: str
    complete: bool
    results: Dict[str, OutcomeResponse]

    @classmethod
    def from_result(cls, result: CollectResult) -> "CollectResponse":
        return cls(
            coordination_key=result.coordination_key,
            complete=result.complete,
            results={
                task_id: OutcomeResponse(
                    backend=outcome.backend,
                    status=outcome.status.name,
                    output=outcome.output,
                    error=outcome.error,
                )
                for task_id, outcome in result.outcomes.items()
            },
        )


class OrchestrateRequest(BaseModel):
    request: str = Field(..., description="Task for the coordinating agent")
    coordination_key: Optional[str] = None


class OrchestrateResponse(BaseModel):
    coordination_key: str
    answer: str
    results: CollectResponse


@router.post(
    "/orchestrations/{key}/tasks",
    response_model=SpawnResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def spawn_task(
    key: str,
    request: SpawnRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
    catalog: ToolCatalog = Depends(get_tool_catalog),
) -> SpawnResponse:
    resolution = resolve_tools(parse_tools(",".join(request.tools)), catalog)
    for warning in resolution.warnings:
        logger.warning("Spawn under '%s': %s", key, warning)
    try:
        task_id = await orchestrator.spawn(
            key,
            request.backend,
            request.prompt,
            persona=request.persona,
            tools=resolution.capabilities,
        )
    except UnknownBackendError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.args[0]) from exc
    return SpawnResponse(
        task_id=task_id,
        coordination_key=key,
        tools=sorted(resolution.capabilities),
        warnings=list(resolution.warnings),
    )


@router.get("/orchestrations/{key}", response_model=CollectResponse)
async def collect_tasks(
    key: str,
    timeout: Optional[float] = Query(default=None, ge=0),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> CollectResponse:
    """Block until the group is complete; a timeout returns the partial group."""
    try:
        result = await orchestrator.collect(key, timeout=timeout)
    except CollectTimeoutError as exc:
        result = exc.result
    return CollectResponse.from_result(result)


@router.post("/orchestrate", response_model=OrchestrateResponse)
async def orchestrate(
    request: OrchestrateRequest,
    coordinator: Coordinator = Depends(get_coordinator),
) -> OrchestrateResponse:
    try:
        reply = await coordinator.handle(request.request, coordination_key=request.coordination_key)
    except ExecutionFailure as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return OrchestrateResponse(
        coordination_key=reply.coordination_key,
        answer=reply.answer,
        results=CollectResponse.from_result(reply.results),
    )
