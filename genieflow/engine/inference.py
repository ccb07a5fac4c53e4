from __future__ import annotations

import logging
import time
from typing import Sequence

from pydantic import BaseModel, Field, ValidationError

from genieflow.config import settings
from genieflow.engine.tools import ParsedToolName, parse_tool_name
from genieflow.llm.client import ChatMessage, ModelClient, ModelRequest
from genieflow.models.context import Message, PipelineContext, RawToolCall, ToolCallResult
from genieflow.models.outputs import OUTPUT_MODEL_BY_TYPE
from genieflow.models.pipeline import GenieConfig, InferenceConfig
from genieflow.models.tools import ToolDefinition

logger = logging.getLogger("genieflow.inference")


class InferenceResult(BaseModel):
    text: str = ""
    tool_calls: list[RawToolCall] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_tool_call_results(tool_calls: Sequence[RawToolCall]) -> list[ToolCallResult]:
    """Type the raw calls that name a known output tool and carry a valid payload.

    Message tools, unknown names and payloads that fail validation are left out.
    """
    results = []
    for call in tool_calls:
        parsed = parse_tool_name(call.name)
        if not isinstance(parsed, ParsedToolName):
            continue
        try:
            OUTPUT_MODEL_BY_TYPE[parsed.output_type].model_validate(call.input)
        except ValidationError:
            logger.debug("Dropping invalid %s payload from latest outputs", call.name)
            continue
        explanation = call.input.get("explanation")
        results.append(
            ToolCallResult(
                output_type=parsed.output_type,
                tool_name=call.name,
                data=dict(call.input),
                explanation=explanation if isinstance(explanation, str) else None,
            )
        )
    return results


class InferenceInvoker:
    """Marshals messages and tools to the model boundary and folds replies into context."""

    def __init__(self, client: ModelClient) -> None:
        self.client = client

    async def invoke(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolDefinition],
        model_config: InferenceConfig | GenieConfig,
    ) -> InferenceResult:
        system = next((m.content for m in messages if m.role == "system"), None)
        request = ModelRequest(
            system_prompt=system,
            messages=[ChatMessage(role=m.role, content=m.content) for m in messages if m.role != "system"],
            model=model_config.model,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens or settings.default_max_tokens,
            tools=list(tools) or None,
        )

        start = time.time()
        try:
            response = await self.client.complete(request)
        except Exception as e:
            # Transports should report errors in the response; keep the engine total anyway
            logger.error("Model call to %s raised: %s", request.model, e)
            return InferenceResult(error=str(e))
        duration = (time.time() - start) * 1000

        if response.error:
            logger.error("Model call to %s failed after %.1fms: %s", request.model, duration, response.error)
            return InferenceResult(error=response.error)

        logger.info(
            "Model call to %s finished in %.1fms (%d tools offered, %d tool calls)",
            request.model,
            duration,
            len(tools),
            len(response.tool_calls),
        )
        return InferenceResult(text=response.text, tool_calls=response.tool_calls)

    @staticmethod
    def commit(context: PipelineContext, result: InferenceResult) -> PipelineContext:
        """Append the assistant reply and replace the latest output batch."""
        assistant = Message(
            role="assistant",
            content=result.text,
            tool_calls=list(result.tool_calls) or None,
        )
        return context.model_copy(
            update={
                "messages": [*context.messages, assistant],
                "latest_outputs": to_tool_call_results(result.tool_calls),
            }
        )
