from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """A callable tool, serialized as-is into the provider's ``tools`` list."""

    name: str = Field(..., pattern=r"^[A-Za-z0-9_-]{1,128}$")
    description: str
    input_schema: dict[str, Any] = Field(
        default_factory=dict,
        description="JSON Schema for the tool input",
    )


class ToolResolution(BaseModel):
    tools: list[ToolDefinition] = Field(default_factory=list)
    owner_by_tool_name: dict[str, str] = Field(default_factory=dict)
    # Tool names claimed by more than one node in the segment
    collisions: list[str] = Field(default_factory=list)
