"""HTTP API exposing background agent controls."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from autoagents.core.errors import AgentNotFoundError
from autoagents.core.models import AgentState, RunRecord
from autoagents.host import AgentHost
from autoagents.runtime import get_host

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentResponse(BaseModel):
    name: str
    description: str
    status: str
    interval_secs: int
    auto_start: bool
    tools: str
    trigger: Optional[str]
    last_run_at: Optional[datetime]
    last_result: Optional[str]
    last_error: Optional[str]

    @classmethod
    def from_state(cls, state: AgentState) -> "AgentResponse":
        recipe = state.recipe
        result = state.last_result
        return cls(
            name=recipe.name,
            description=recipe.description,
            status=state.status.name,
            interval_secs=recipe.interval_secs,
            auto_start=recipe.auto_start,
            tools=recipe.tools.describe(),
            trigger=recipe.trigger_summary(),
            last_run_at=state.last_run_at,
            last_result=result.output if result is not None and result.ok else None,
            last_error=result.error if result is not None and not result.ok else None,
        )


class RunResponse(BaseModel):
    agent: str
    trigger: str
    started_at: datetime
    finished_at: datetime
    ok: bool
    output: str
    error: Optional[str]

    @classmethod
    def from_record(cls, record: RunRecord) -> "RunResponse":
        return cls(
            agent=record.agent,
            trigger=record.trigger,
            started_at=record.started_at,
            finished_at=record.finished_at,
            ok=record.result.ok,
            output=record.result.output,
            error=record.result.error,
        )


class EventRequest(BaseModel):
    event_type: str
    variable_name: Optional[str] = None


class ReloadResponse(BaseModel):
    loaded: List[str]
    removed: List[str]
    errors: List[dict]


def _not_found(exc: AgentNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])


@router.get("", response_model=List[AgentResponse])
async def list_agents(host: AgentHost = Depends(get_host)) -> List[AgentResponse]:
    return [AgentResponse.from_state(state) for state in host.agents()]


@router.post("/reload", response_model=ReloadResponse)
async def reload_agents(host: AgentHost = Depends(get_host)) -> ReloadResponse:
    summary = await host.reload()
    return ReloadResponse(
        loaded=[recipe.name for recipe in summary.report.recipes],
        removed=list(summary.removed),
        errors=[{"file": name, "error": message} for name, message in summary.report.errors],
    )


@router.post("/events", response_model=List[RunResponse])
async def dispatch_event(request: EventRequest, host: AgentHost = Depends(get_host)) -> List[RunResponse]:
    """Run every running agent whose trigger matches the event."""
    records = await host.dispatch_event(request.event_type, request.variable_name)
    return [RunResponse.from_record(record) for record in records]


@router.post("/{name}/start", response_model=AgentResponse)
async def start_agent(name: str, host: AgentHost = Depends(get_host)) -> AgentResponse:
    try:
        state = await host.start(name)
    except AgentNotFoundError as exc:
        raise _not_found(exc) from exc
    return AgentResponse.from_state(state)


@router.post("/{name}/stop", response_model=AgentResponse)
async def stop_agent(name: str, host: AgentHost = Depends(get_host)) -> AgentResponse:
    try:
        state = await host.stop(name)
    except AgentNotFoundError as exc:
        raise _not_found(exc) from exc
    return AgentResponse.from_state(state)


@router.post("/{name}/run", response_model=Optional[RunResponse])
async def run_agent(name: str, host: AgentHost = Depends(get_host)) -> Optional[RunResponse]:
    try:
        record = await host.run(name)
    except AgentNotFoundError as exc:
        raise _not_found(exc) from exc
    return RunResponse.from_record(record) if record is not None else None


@router.get("/{name}/history", response_model=List[RunResponse])
async def agent_history(name: str, host: AgentHost = Depends(get_host)) -> List[RunResponse]:
    try:
        records = host.history(name)
    except AgentNotFoundError as exc:
        raise _not_found(exc) from exc
    return [RunResponse.from_record(record) for record in records]


@router.delete("/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(
    name: str,
    delete_recipe: bool = False,
    host: AgentHost = Depends(get_host),
) -> None:
    try:
        await host.remove(name, delete_recipe=delete_recipe)
    except AgentNotFoundError as exc:
        raise _not_found(exc) from exc
