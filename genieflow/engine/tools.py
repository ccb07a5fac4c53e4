"""Tool resolution: which structured-output tools an inference call can use.

Context flows downward. An inference node gathers one tool from every
output-capable or self-inferencing node above it, stopping at the previous
inference node, so each inference call only sees its own segment.
"""

from __future__ import annotations

import logging
import re
from typing import Any, NamedTuple

from genieflow.models.outputs import (
    HEX_COLOR_PATTERN,
    ICON_IDS,
    SURVEY_MAX_OPTIONS,
    SURVEY_MIN_OPTIONS,
    WEBHOOK_METHODS,
    OutputType,
)
from genieflow.models.pipeline import SELF_INFERENCING_KINDS, NodeKind, Pipeline, PipelineNode
from genieflow.models.tools import ToolDefinition, ToolResolution

logger = logging.getLogger("genieflow.tools")

TOOL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
MAX_TOOL_NAME_LENGTH = 128
NAME_PLACEHOLDER = "node"
GENERIC_TOOL_NAME = "output_tool"

MESSAGE_TOOL_PREFIX = "send_message_to_"
DEFAULT_MESSAGE_TARGET = "genie"

_DISALLOWED = re.compile(r"[^A-Za-z0-9_-]")
_REPEATED_SEPARATORS = re.compile(r"([_-])[_-]+")


class ToolTemplate(NamedTuple):
    base_name: str
    description: str
    input_schema: dict[str, Any]


class ParsedToolName(NamedTuple):
    output_type: OutputType
    custom_name: str | None = None


class MessageToolTarget(NamedTuple):
    """Returned by ``parse_tool_name`` for self-inferencing message tools."""

    target_name: str


TOOL_TEMPLATES: dict[OutputType, ToolTemplate] = {
    OutputType.COLOR: ToolTemplate(
        base_name="display_color",
        description="Display a color to the user.",
        input_schema={
            "type": "object",
            "properties": {
                "hex": {
                    "type": "string",
                    "pattern": HEX_COLOR_PATTERN,
                    "description": "Hex color code, e.g. #ff5500",
                },
                "name": {"type": "string", "description": "Human-readable color name"},
                "explanation": {"type": "string", "description": "Why you chose this color"},
            },
            "required": ["hex"],
        },
    ),
    OutputType.ICON: ToolTemplate(
        base_name="display_icon",
        description="Display an icon to represent a concept, status, or emotion.",
        input_schema={
            "type": "object",
            "properties": {
                "id": {
                    "type": "string",
                    "enum": list(ICON_IDS),
                    "description": "Icon identifier. Available: " + ", ".join(ICON_IDS),
                },
                "label": {"type": "string", "description": "Label to show with the icon"},
                "explanation": {"type": "string", "description": "Why you chose this icon"},
            },
            "required": ["id"],
        },
    ),
    OutputType.GAUGE: ToolTemplate(
        base_name="display_gauge",
        description="Display a numeric value on a gauge or meter.",
        input_schema={
            "type": "object",
            "properties": {
                "value": {"type": "number", "description": "The numeric value to display"},
                "min": {"type": "number", "description": "Minimum value (default: 0)"},
                "max": {"type": "number", "description": "Maximum value (default: 100)"},
                "unit": {"type": "string", "description": "Unit label, e.g. '%', 'points'"},
                "label": {"type": "string", "description": "What this value represents"},
                "explanation": {"type": "string", "description": "Why you chose this value"},
            },
            "required": ["value"],
        },
    ),
    OutputType.PIXEL_ART: ToolTemplate(
        base_name="generate_pixel_art",
        description="Generate pixel art on a grid.",
        input_schema={
            "type": "object",
            "properties": {
                "colors": {
                    "type": "object",
                    "description": (
                        "Palette mapping single-character codes to hex colors or 'transparent' "
                        "(at most 32 codes)"
                    ),
                },
                "grid": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Rows of palette codes, all the same length (32-128 per side)",
                },
                "explanation": {"type": "string", "description": "Description of what you drew"},
            },
            "required": ["colors", "grid"],
        },
    ),
    OutputType.WEBHOOK: ToolTemplate(
        base_name="trigger_webhook",
        description="Make an HTTP request to a URL.",
        input_schema={
            "type": "object",
            "properties": {
                "url": {"type": "string", "format": "uri", "description": "The URL to request"},
                "method": {
                    "type": "string",
                    "enum": list(WEBHOOK_METHODS),
                    "description": "HTTP method",
                },
                "headers": {"type": "object", "description": "HTTP headers to include"},
                "body": {"type": "object", "description": "Request body (for POST/PUT)"},
                "explanation": {"type": "string", "description": "Why you're making this request"},
            },
            "required": ["url", "method"],
        },
    ),
    OutputType.SURVEY: ToolTemplate(
        base_name="ask_survey",
        description="Present a multiple choice question to the user.",
        input_schema={
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The question to ask"},
                "options": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string"},
                            "label": {"type": "string"},
                        },
                        "required": ["id", "label"],
                    },
                    "minItems": SURVEY_MIN_OPTIONS,
                    "maxItems": SURVEY_MAX_OPTIONS,
                    "description": "Available choices (2-6 options)",
                },
                "allowMultiple": {"type": "boolean", "description": "Allow selecting multiple options"},
                "explanation": {"type": "string", "description": "Context for why you're asking this"},
            },
            "required": ["question", "options"],
        },
    ),
    OutputType.EMOJI: ToolTemplate(
        base_name="display_emoji",
        description="Display an emoji to the user.",
        input_schema={
            "type": "object",
            "properties": {
                "emoji": {"type": "string", "description": "A single emoji character, e.g. 🎉"},
                "explanation": {"type": "string", "description": "Why you chose this emoji"},
            },
            "required": ["emoji"],
        },
    ),
}

MESSAGE_TOOL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "message": {"type": "string", "description": "The message to send"},
    },
    "required": ["message"],
}

OUTPUT_TYPE_BY_KIND: dict[NodeKind, OutputType] = {
    NodeKind.COLOR_DISPLAY: OutputType.COLOR,
    NodeKind.ICON_DISPLAY: OutputType.ICON,
    NodeKind.GAUGE_DISPLAY: OutputType.GAUGE,
    NodeKind.PIXEL_ART_DISPLAY: OutputType.PIXEL_ART,
    NodeKind.WEBHOOK_TRIGGER: OutputType.WEBHOOK,
    NodeKind.SURVEY: OutputType.SURVEY,
    NodeKind.EMOJI_DISPLAY: OutputType.EMOJI,
}


def is_output_node(kind: NodeKind) -> bool:
    return kind in OUTPUT_TYPE_BY_KIND


def is_self_inferencing(kind: NodeKind) -> bool:
    return kind in SELF_INFERENCING_KINDS


# ── Names ────────────────────────────────────────────────────────────

def sanitize_tool_name(value: str, max_length: int = MAX_TOOL_NAME_LENGTH) -> str:
    """Reduce arbitrary user text to a provider-safe tool name fragment.

    Idempotent: sanitizing an already sanitized name returns it unchanged.
    """
    cleaned = _DISALLOWED.sub("", value or "")
    cleaned = _REPEATED_SEPARATORS.sub(r"\1", cleaned)
    cleaned = cleaned[:max(1, max_length)].strip("_-")
    if not cleaned:
        cleaned = NAME_PLACEHOLDER[:max(1, max_length)]
    if not TOOL_NAME_PATTERN.match(cleaned):
        return GENERIC_TOOL_NAME
    return cleaned


def generate_tool_name(base_name: str, custom_name: str | None = None) -> str:
    """Splice a custom name after the first segment: display_icon + weather -> display_weather_icon."""
    if not custom_name:
        return base_name
    head, sep, tail = base_name.partition("_")
    room = MAX_TOOL_NAME_LENGTH - len(base_name) - 1
    custom = sanitize_tool_name(custom_name, max_length=room)
    name = f"{head}_{custom}_{tail}" if sep else f"{base_name}_{custom}"
    if not TOOL_NAME_PATTERN.match(name):
        logger.warning("Generated tool name %r is invalid, using %s", name, GENERIC_TOOL_NAME)
        return GENERIC_TOOL_NAME
    return name


def message_tool_name(target_name: str | None) -> str:
    room = MAX_TOOL_NAME_LENGTH - len(MESSAGE_TOOL_PREFIX)
    target = sanitize_tool_name(target_name, max_length=room) if target_name else DEFAULT_MESSAGE_TARGET
    name = f"{MESSAGE_TOOL_PREFIX}{target}"
    if not TOOL_NAME_PATTERN.match(name):
        return GENERIC_TOOL_NAME
    return name


def parse_tool_name(tool_name: str) -> ParsedToolName | MessageToolTarget | None:
    """Recover the output type and custom name from a generated tool name."""
    if tool_name.startswith(MESSAGE_TOOL_PREFIX) and len(tool_name) > len(MESSAGE_TOOL_PREFIX):
        return MessageToolTarget(tool_name[len(MESSAGE_TOOL_PREFIX):])

    for output_type, template in TOOL_TEMPLATES.items():
        base = template.base_name
        if tool_name == base:
            return ParsedToolName(output_type)
        head, sep, tail = base.partition("_")
        if not sep:
            continue
        prefix, suffix = f"{head}_", f"_{tail}"
        if (
            tool_name.startswith(prefix)
            and tool_name.endswith(suffix)
            and len(tool_name) > len(prefix) + len(suffix)
        ):
            return ParsedToolName(output_type, tool_name[len(prefix):-len(suffix)])
    return None


# ── Definitions ──────────────────────────────────────────────────────

def _custom_name(node: PipelineNode) -> str | None:
    return getattr(node.config, "name", None) or None


def tool_for_node(node: PipelineNode) -> ToolDefinition | None:
    """Build the tool a node exposes to the inference call below it, if any."""
    if is_self_inferencing(node.kind):
        target = _custom_name(node)
        label = target or DEFAULT_MESSAGE_TARGET
        return ToolDefinition(
            name=message_tool_name(target),
            description=(
                f"Send a message to {label}. The message replaces {label}'s backstory, "
                "so describe who they are now."
            ),
            input_schema=MESSAGE_TOOL_SCHEMA,
        )

    output_type = OUTPUT_TYPE_BY_KIND.get(node.kind)
    if output_type is None:
        return None
    template = TOOL_TEMPLATES[output_type]
    custom = _custom_name(node)
    description = template.description
    if custom:
        description = f'{description} Use this for "{custom}" output.'
    return ToolDefinition(
        name=generate_tool_name(template.base_name, custom),
        description=description,
        input_schema=template.input_schema,
    )


def resolve_tools(pipeline: Pipeline, inference_node_index: int) -> ToolResolution:
    """Collect the tools visible to the inference node at ``inference_node_index``.

    Scans upward and stops at the previous inference node. When two nodes map
    to the same tool name both tools are returned, the later scanned node
    owns the name and the name is listed in ``collisions``.
    """
    tools: list[ToolDefinition] = []
    owner_by_tool_name: dict[str, str] = {}
    collisions: list[str] = []

    for i in range(min(inference_node_index, len(pipeline.nodes)) - 1, -1, -1):
        node = pipeline.nodes[i]
        if node.kind == NodeKind.INFERENCE:
            break
        tool = tool_for_node(node)
        if tool is None:
            continue
        tools.append(tool)
        previous_owner = owner_by_tool_name.get(tool.name)
        if previous_owner is not None:
            logger.warning(
                "Tool name %s is claimed by nodes %s and %s; routing to %s",
                tool.name,
                previous_owner,
                node.id,
                node.id,
            )
            if tool.name not in collisions:
                collisions.append(tool.name)
        owner_by_tool_name[tool.name] = node.id

    return ToolResolution(tools=tools, owner_by_tool_name=owner_by_tool_name, collisions=collisions)
