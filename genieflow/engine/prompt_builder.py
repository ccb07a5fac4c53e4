"""Context accumulation: the system prompt and message list for a model call."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from genieflow.behaviors.registry import get_behavior
from genieflow.engine.tools import OUTPUT_TYPE_BY_KIND, tool_for_node
from genieflow.models.context import (
    ConversationState,
    ExternalContent,
    Message,
    PipelineContext,
)
from genieflow.models.outputs import (
    ICON_IDS,
    PIXEL_ART_MAX_COLORS,
    PIXEL_ART_MAX_SIDE,
    PIXEL_ART_MIN_SIDE,
    SURVEY_MAX_OPTIONS,
    SURVEY_MIN_OPTIONS,
    TRANSPARENT,
    NodeOutput,
    OutputType,
    PixelArtOutput,
)
from genieflow.models.pipeline import (
    FREE_TEXT_INPUT_KINDS,
    ContextMode,
    GenieConfig,
    PipelineNode,
)

logger = logging.getLogger("genieflow.prompt_builder")

REFERENCE_HEADER = "## Reference Content"
ADDITIONAL_CONTEXT_HEADER = "## Additional Context"

ACTION_BY_TYPE: dict[OutputType, str] = {
    OutputType.COLOR: "display a color",
    OutputType.ICON: "display an icon",
    OutputType.GAUGE: "display a value on the gauge",
    OutputType.PIXEL_ART: "generate pixel art",
    OutputType.WEBHOOK: "make an HTTP request",
    OutputType.SURVEY: "ask the user a question",
    OutputType.EMOJI: "display an emoji",
}

ICON_MEANINGS = {
    "check": "Success, yes, approval",
    "x": "Failure, no, rejection",
    "alert": "Caution, warning",
    "info": "Information, details",
    "question": "Uncertainty, open question",
    "star": "Excellence, favorite",
    "heart": "Love, appreciation",
    "fire": "Hot, urgent, energy",
    "zap": "Power, speed",
    "smile": "Happy, pleased",
    "frown": "Sad, displeased",
    "sun": "Day, energy",
    "moon": "Night, calm",
    "cloud": "Weather, moods",
    "rain": "Weather, moods",
    "snow": "Weather, moods",
    "storm": "Weather, turmoil",
    "leaf": "Nature, growth",
}

USAGE_GUIDANCE: dict[OutputType, str] = {
    OutputType.COLOR: (
        "Color guidelines:\n"
        "- Use warm colors (reds, oranges, yellows) for energy, passion, urgency\n"
        "- Use cool colors (blues, greens, purples) for calm, trust, nature\n"
        "- Use neutrals (grays, browns, blacks, whites) for balance, sophistication\n"
        "- Always provide valid 6-digit hex codes starting with #"
    ),
    OutputType.ICON: "Icon meanings:\n" + "\n".join(
        f"- {icon_id}: {ICON_MEANINGS[icon_id]}" for icon_id in ICON_IDS
    ),
    OutputType.GAUGE: (
        "Gauge guidelines:\n"
        "- value must be a number, not a string\n"
        "- min and max default to 0 and 100; keep value inside the range"
    ),
    OutputType.PIXEL_ART: (
        "Guidelines:\n"
        f"- Grid dimensions must be between {PIXEL_ART_MIN_SIDE}x{PIXEL_ART_MIN_SIDE} and "
        f"{PIXEL_ART_MAX_SIDE}x{PIXEL_ART_MAX_SIDE} pixels (width and height)\n"
        f"- Maximum of {PIXEL_ART_MAX_COLORS} colors in the colors object (including transparent)\n"
        '- Use single-character codes for colors (e.g., "W" for white, "." for transparent)\n'
        "- All rows in the grid must have the same length\n"
        f'- Use "{TRANSPARENT}" for empty/background pixels'
    ),
    OutputType.WEBHOOK: (
        "Webhook guidelines:\n"
        "- Only make a request when the conversation calls for one\n"
        "- url must be absolute, including scheme and host\n"
        "- body is only sent with POST and PUT"
    ),
    OutputType.SURVEY: (
        "Survey guidelines:\n"
        f"- Offer between {SURVEY_MIN_OPTIONS} and {SURVEY_MAX_OPTIONS} options, each with a short unique id\n"
        "- Set allowMultiple when more than one answer can apply"
    ),
    OutputType.EMOJI: (
        "Emoji guidelines:\n"
        "- Use emojis to convey emotions, concepts, or status\n"
        "- Choose emojis that clearly represent the intended meaning\n"
        "- Single emoji per call (not multiple emojis)"
    ),
}

PIXEL_ART_PREVIEW_ROWS = 10


@dataclass(frozen=True)
class PromptOptions:
    # Extra segment placed right after the base prompt (e.g. a genie's identity)
    additional_prompt: str | None = None
    include_conversations: bool = True


def _node_label(node: PipelineNode) -> str:
    return getattr(node.config, "name", None) or node.kind.value.replace("_", " ")


def _argument_lines(schema: dict[str, Any]) -> list[str]:
    required = set(schema.get("required", []))
    lines = []
    for key, prop in schema.get("properties", {}).items():
        optional = "" if key in required else "(optional) "
        lines.append(f"- {key}: {optional}{prop.get('description', '')}".rstrip())
    return lines


def describe_node(node: PipelineNode) -> str:
    """Usage block for a node's tool, or an empty string.

    Output nodes list the tool, its arguments and per-kind guidelines.
    """
    tool = tool_for_node(node)
    if tool is None:
        return ""
    output_type = OUTPUT_TYPE_BY_KIND.get(node.kind)
    if output_type is not None:
        lines = [
            "Available output block:",
            f'- "{_node_label(node)}": {node.id}, tool: {tool.name}',
            "",
            f"To {ACTION_BY_TYPE[output_type]}, you MUST call the {tool.name} tool with:",
            *_argument_lines(tool.input_schema),
        ]
        guidance = USAGE_GUIDANCE.get(output_type)
        if guidance:
            lines += ["", guidance]
        return "\n".join(lines)
    if isinstance(node.config, GenieConfig):
        return (
            f"[Genie: {node.config.name} (id: {node.id})] "
            f"Call the `{tool.name}` tool with a message to give {node.config.name} a new backstory."
        )
    return ""


def describe_output(node: PipelineNode, output: NodeOutput | None) -> str:
    """Summary of a node's last output for the nodes below it.

    Only pixel art has one: its palette and the top of its grid.
    """
    if not isinstance(output, PixelArtOutput) or not output.grid:
        return ""
    height = len(output.grid)
    width = len(output.grid[0])
    lines = [f"### {_node_label(node)} ({width}x{height} pixels)"]
    if output.explanation:
        lines += [f"Description: {output.explanation}", ""]
    lines.append("Color palette:")
    lines += [f'- "{code}": {color}' for code, color in output.colors.items()]
    lines += ["", f"Pixel grid ({height} rows):"]
    lines += output.grid[:PIXEL_ART_PREVIEW_ROWS]
    if height > PIXEL_ART_PREVIEW_ROWS:
        lines.append(f"... ({height - PIXEL_ART_PREVIEW_ROWS} more rows)")
    return "\n".join(lines)


def build_prompt(
    base_prompt: str,
    preceding_nodes: Sequence[PipelineNode],
    conversations: Mapping[str, ConversationState],
    external_context: Mapping[str, ExternalContent],
    user_inputs: Mapping[str, str],
    options: PromptOptions | None = None,
    outputs: Mapping[str, NodeOutput] | None = None,
) -> str:
    """Assemble a system prompt from the base prompt and the nodes above the caller.

    Order is fixed: base prompt, additional prompt, one block per preceding
    node, reference content, additional context. A node's block is followed
    by a summary of its last entry in ``outputs`` when it has one.
    """
    options = options or PromptOptions()
    prompt = base_prompt

    if options.additional_prompt:
        if prompt:
            prompt += "\n\n"
        prompt += options.additional_prompt

    for node in preceding_nodes:
        behavior = get_behavior(node.kind)
        conversation = conversations.get(node.id)
        if (
            behavior is not None
            and options.include_conversations
            and conversation is not None
            and conversation.messages
        ):
            block = behavior.format_context_for_others(node.config, conversation)
        else:
            block = describe_node(node)
        if block:
            prompt += "\n\n" + block.strip("\n")
        summary = describe_output(node, (outputs or {}).get(node.id))
        if summary:
            prompt += "\n\n" + summary

    references = [
        external_context[node.id]
        for node in preceding_nodes
        if node.id in external_context and external_context[node.id].ok
    ]
    if references:
        prompt += f"\n\n{REFERENCE_HEADER}\n"
        for item in references:
            prompt += f"\n### Source: {item.url}\n{item.content}\n"

    extra = []
    for node in preceding_nodes:
        if node.kind not in FREE_TEXT_INPUT_KINDS:
            continue
        value = (user_inputs.get(node.id) or "").strip()
        if value:
            extra.append(value)
    if extra:
        prompt += f"\n\n{ADDITIONAL_CONTEXT_HEADER}\n"
        prompt += "".join(f"\n- {value}" for value in extra)

    return prompt


def with_system_message(context: PipelineContext, prompt: str) -> PipelineContext:
    """Return a context whose single system message is ``prompt``."""
    messages = [Message(role="system", content=prompt)]
    messages.extend(m for m in context.messages if m.role != "system")
    return context.model_copy(update={"messages": messages})


def with_user_message(context: PipelineContext, content: str) -> PipelineContext:
    if not content:
        return context
    return context.model_copy(
        update={"messages": [*context.messages, Message(role="user", content=content)]}
    )


def apply_context_mode(messages: Sequence[Message], mode: ContextMode) -> list[Message]:
    """Shape the non-system message history for a call.

    ``continue`` keeps everything; ``fresh`` keeps only the latest user message.
    """
    history = [m for m in messages if m.role != "system"]
    if mode == ContextMode.FRESH:
        last_user = next((m for m in reversed(history) if m.role == "user"), None)
        return [last_user] if last_user is not None else []
    return history
