"""Model boundary: one request in, one reply (text + tool calls) out."""

from __future__ import annotations

import logging
from typing import Any, Literal, Protocol

import anthropic
from pydantic import BaseModel, Field

from genieflow.config import settings
from genieflow.models.context import RawToolCall
from genieflow.models.tools import ToolDefinition

logger = logging.getLogger("genieflow.llm")


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ModelRequest(BaseModel):
    system_prompt: str | None = None
    messages: list[ChatMessage]
    model: str
    temperature: float = 0.7
    max_tokens: int = 1024
    tools: list[ToolDefinition] | None = None


class ModelResponse(BaseModel):
    text: str = ""
    tool_calls: list[RawToolCall] = Field(default_factory=list)
    error: str | None = None


class ModelClient(Protocol):
    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Run one model call. Failures come back as ``ModelResponse.error``."""
        ...


def parse_content_blocks(content: list[Any]) -> ModelResponse:
    """Split Anthropic content blocks into concatenated text and tool calls, in reply order."""
    text_parts: list[str] = []
    tool_calls: list[RawToolCall] = []
    for block in content:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            text_parts.append(block.text)
        elif block_type == "tool_use":
            raw_input = block.input if isinstance(block.input, dict) else {}
            tool_calls.append(RawToolCall(id=block.id, name=block.name, input=raw_input))
    return ModelResponse(text="".join(text_parts), tool_calls=tool_calls)


class AnthropicModelClient:
    """``ModelClient`` backed by the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.base_url = base_url if base_url is not None else settings.anthropic_base_url
        self._client: anthropic.AsyncAnthropic | None = None

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            kwargs: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url:
                kwargs["base_url"] = self.base_url
            self._client = anthropic.AsyncAnthropic(**kwargs)
        return self._client

    async def complete(self, request: ModelRequest) -> ModelResponse:
        if not self.api_key:
            return ModelResponse(error="ANTHROPIC_API_KEY not configured; add it to .env")

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [m.model_dump() for m in request.messages],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt
        if request.tools:
            kwargs["tools"] = [t.model_dump() for t in request.tools]

        try:
            message = await self._get_client().messages.create(**kwargs)
        except anthropic.APIError as e:
            logger.error("Claude API error: %s", e)
            return ModelResponse(error=f"Claude API error: {e}")

        return parse_content_blocks(message.content)
