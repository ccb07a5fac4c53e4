from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

from genieflow.models.outputs import OutputType


class RawToolCall(BaseModel):
    """A tool invocation exactly as the model returned it."""

    id: str | None = None
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str
    tool_calls: list[RawToolCall] | None = None


class ToolCallResult(BaseModel):
    output_type: OutputType
    tool_name: str
    data: dict[str, Any] = Field(default_factory=dict)
    explanation: str | None = None


class ContextMetadata(BaseModel):
    pipeline_id: str
    started_at: float = Field(default_factory=time.time)


class PipelineContext(BaseModel):
    messages: list[Message] = Field(default_factory=list)
    # Replaced, never merged, on each inference step
    latest_outputs: list[ToolCallResult] = Field(default_factory=list)
    metadata: ContextMetadata

    @property
    def system_message(self) -> Message | None:
        return next((m for m in self.messages if m.role == "system"), None)


def create_initial_context(pipeline_id: str) -> PipelineContext:
    return PipelineContext(metadata=ContextMetadata(pipeline_id=pipeline_id))


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ConversationState(BaseModel):
    """Independent turn history of one self-inferencing node."""

    messages: list[ConversationTurn] = Field(default_factory=list)

    def appended(self, user_message: str, reply: str) -> ConversationState:
        return ConversationState(
            messages=[
                *self.messages,
                ConversationTurn(role="user", content=user_message),
                ConversationTurn(role="assistant", content=reply),
            ]
        )


class ExternalContent(BaseModel):
    """Content fetched for a URL loader node."""

    url: str
    content: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.content)
