from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from genieflow.models.context import RawToolCall
from genieflow.models.outputs import NodeOutput


class RunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    # Referenced node is missing or of the wrong kind
    SKIPPED = "skipped"
    # Node already has a call in flight
    REJECTED = "rejected"


class InferenceOutcome(BaseModel):
    node_id: str
    status: RunStatus
    text: str = ""
    tool_calls: list[RawToolCall] = Field(default_factory=list)
    outputs: dict[str, NodeOutput] = Field(default_factory=dict)
    updated_nodes: list[str] = Field(default_factory=list)
    error: str | None = None


class SelfInferenceOutcome(BaseModel):
    node_id: str
    status: RunStatus
    reply: str = ""
    error: str | None = None


class PipelineRunResult(BaseModel):
    pipeline_id: str
    status: RunStatus
    outcomes: list[InferenceOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
