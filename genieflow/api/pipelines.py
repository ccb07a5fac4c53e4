"""Pipeline editing and execution endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from genieflow.api.dependencies import get_runner, get_store, load_session
from genieflow.engine.runner import PipelineRunner
from genieflow.engine.store import SessionStore
from genieflow.models.context import ExternalContent
from genieflow.models.execution import (
    InferenceOutcome,
    PipelineRunResult,
    RunStatus,
    SelfInferenceOutcome,
)
from genieflow.models.pipeline import CONFIG_BY_KIND, NodeConfig, NodeKind, Pipeline, PipelineNode
from genieflow.models.tools import ToolResolution

logger = logging.getLogger("genieflow.api.pipelines")
router = APIRouter(prefix="/api", tags=["pipelines"])


class PipelineCreate(BaseModel):
    pipeline: Pipeline | None = None
    system_prompt: str | None = None


class NodeCreate(BaseModel):
    kind: NodeKind
    config: dict[str, Any] | None = None
    index: int | None = None


class NodeMove(BaseModel):
    index: int


class MessageRequest(BaseModel):
    message: str | None = None


class UserInput(BaseModel):
    value: str


class PipelineRun(BaseModel):
    user_inputs: dict[str, str] = {}


class EditResult(BaseModel):
    node_id: str
    status: RunStatus


def _edit_result(node_id: str, changed: bool) -> EditResult:
    return EditResult(node_id=node_id, status=RunStatus.COMPLETED if changed else RunStatus.SKIPPED)


def _validate_config(kind: NodeKind, config: dict[str, Any] | None) -> NodeConfig:
    try:
        return CONFIG_BY_KIND[kind].model_validate(config or {})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False)) from e


@router.post("/pipelines")
async def create_pipeline(
    request: PipelineCreate,
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    """Open an in-memory session for a new or supplied pipeline."""
    if request.pipeline is not None and store.get(request.pipeline.id) is not None:
        raise HTTPException(status_code=409, detail="Pipeline already exists")
    session = store.create(request.pipeline, request.system_prompt)
    return session.snapshot()


@router.get("/pipelines/{pipeline_id}")
async def get_pipeline(pipeline_id: str, store: SessionStore = Depends(get_store)) -> dict[str, Any]:
    return load_session(store, pipeline_id).snapshot()


@router.delete("/pipelines/{pipeline_id}")
async def delete_pipeline(pipeline_id: str, store: SessionStore = Depends(get_store)) -> dict[str, str]:
    if not store.delete(pipeline_id):
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return {"id": pipeline_id, "status": "deleted"}


@router.post("/pipelines/{pipeline_id}/run")
async def run_pipeline(
    pipeline_id: str,
    request: PipelineRun,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> PipelineRunResult:
    session = load_session(store, pipeline_id)
    return await runner.run(session, request.user_inputs)


# ── Nodes ────────────────────────────────────────────────────────────

@router.post("/pipelines/{pipeline_id}/nodes")
async def add_node(
    pipeline_id: str,
    request: NodeCreate,
    store: SessionStore = Depends(get_store),
) -> PipelineNode:
    session = load_session(store, pipeline_id)
    config = _validate_config(request.kind, request.config)
    node = session.add_node(request.kind, config, request.index)
    if node is None:
        raise HTTPException(status_code=400, detail=f"Cannot add a {request.kind.value} node here")
    return node


@router.delete("/pipelines/{pipeline_id}/nodes/{node_id}")
async def remove_node(pipeline_id: str, node_id: str, store: SessionStore = Depends(get_store)) -> EditResult:
    session = load_session(store, pipeline_id)
    return _edit_result(node_id, session.remove_node(node_id))


@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/move")
async def move_node(
    pipeline_id: str,
    node_id: str,
    request: NodeMove,
    store: SessionStore = Depends(get_store),
) -> EditResult:
    session = load_session(store, pipeline_id)
    return _edit_result(node_id, session.move_node(node_id, request.index))


@router.put("/pipelines/{pipeline_id}/nodes/{node_id}/config")
async def replace_config(
    pipeline_id: str,
    node_id: str,
    config: dict[str, Any],
    store: SessionStore = Depends(get_store),
) -> EditResult:
    session = load_session(store, pipeline_id)
    node = session.get_node(node_id)
    if node is None:
        return _edit_result(node_id, False)
    return _edit_result(node_id, session.update_config(node_id, _validate_config(node.kind, config)))


@router.put("/pipelines/{pipeline_id}/nodes/{node_id}/user-input")
async def set_user_input(
    pipeline_id: str,
    node_id: str,
    request: UserInput,
    store: SessionStore = Depends(get_store),
) -> EditResult:
    session = load_session(store, pipeline_id)
    if session.get_node(node_id) is None:
        return _edit_result(node_id, False)
    session.set_user_input(node_id, request.value)
    return _edit_result(node_id, True)


@router.get("/pipelines/{pipeline_id}/nodes/{node_id}/tools")
async def inspect_tools(
    pipeline_id: str,
    node_id: str,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> ToolResolution:
    return runner.inspect_tools(load_session(store, pipeline_id), node_id)


# ── Execution ────────────────────────────────────────────────────────

@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/inference")
async def run_inference(
    pipeline_id: str,
    node_id: str,
    request: MessageRequest,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> InferenceOutcome:
    session = load_session(store, pipeline_id)
    return await runner.run_inference(session, node_id, request.message)


@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/messages")
async def send_message(
    pipeline_id: str,
    node_id: str,
    request: MessageRequest,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> SelfInferenceOutcome:
    """Talk to a self-inferencing node directly."""
    session = load_session(store, pipeline_id)
    if not request.message:
        raise HTTPException(status_code=400, detail="message is required")
    return await runner.self_inferencing.self_inference(session, node_id, request.message)


@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/initialize")
async def initialize_node(
    pipeline_id: str,
    node_id: str,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> SelfInferenceOutcome:
    session = load_session(store, pipeline_id)
    return await runner.self_inferencing.initialize(session, node_id)


@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/acknowledge")
async def acknowledge_update(
    pipeline_id: str,
    node_id: str,
    store: SessionStore = Depends(get_store),
) -> EditResult:
    session = load_session(store, pipeline_id)
    had_update = session.has_pending_update(node_id)
    session.acknowledge_update(node_id)
    return _edit_result(node_id, had_update)


@router.post("/pipelines/{pipeline_id}/nodes/{node_id}/load-url")
async def load_url(
    pipeline_id: str,
    node_id: str,
    store: SessionStore = Depends(get_store),
    runner: PipelineRunner = Depends(get_runner),
) -> ExternalContent:
    session = load_session(store, pipeline_id)
    content = await runner.load_url(session, node_id)
    if content is None:
        raise HTTPException(status_code=400, detail="Not a URL loader node")
    return content
