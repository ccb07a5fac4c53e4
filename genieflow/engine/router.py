"""Routes tool calls from an inference reply to the nodes that own them."""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Optional, Sequence

from pydantic import ValidationError

from genieflow.engine.editor import find_node
from genieflow.engine.tools import OUTPUT_TYPE_BY_KIND, ParsedToolName, parse_tool_name
from genieflow.models.context import RawToolCall
from genieflow.models.outputs import OUTPUT_MODEL_BY_TYPE, NodeOutput
from genieflow.models.pipeline import NodeKind, Pipeline

logger = logging.getLogger("genieflow.router")

OutputParser = Callable[[RawToolCall], Optional[NodeOutput]]


def _make_parser(kind: NodeKind) -> OutputParser:
    output_type = OUTPUT_TYPE_BY_KIND[kind]
    model = OUTPUT_MODEL_BY_TYPE[output_type]

    def parse(call: RawToolCall) -> NodeOutput | None:
        parsed = parse_tool_name(call.name)
        if not isinstance(parsed, ParsedToolName) or parsed.output_type != output_type:
            return None
        try:
            return model.model_validate(call.input)
        except ValidationError as e:
            logger.warning(
                "Rejected %s payload from %s: %d error(s): %s",
                output_type.value,
                call.name,
                e.error_count(),
                e.errors()[0]["msg"] if e.errors() else "",
            )
            return None

    return parse


PARSERS: dict[NodeKind, OutputParser] = {kind: _make_parser(kind) for kind in OUTPUT_TYPE_BY_KIND}


def parse_for_node_kind(kind: NodeKind, call: RawToolCall) -> NodeOutput | None:
    parser = PARSERS.get(kind)
    return parser(call) if parser is not None else None


def route(
    tool_calls: Sequence[RawToolCall],
    owner_by_tool_name: Mapping[str, str],
    pipeline: Pipeline,
    parse: Callable[[NodeKind, RawToolCall], NodeOutput | None] = parse_for_node_kind,
) -> dict[str, NodeOutput]:
    """Map owning node id to its validated output.

    Invalid payloads yield nothing for their node. When a node receives
    several calls, the last valid one wins.
    """
    outputs: dict[str, NodeOutput] = {}
    for call in tool_calls:
        node_id = owner_by_tool_name.get(call.name)
        if node_id is None:
            logger.debug("No owner for tool call %s", call.name)
            continue
        node = find_node(pipeline, node_id)
        if node is None or node.kind not in PARSERS:
            # Self-inferencing message tools are handled by the manager
            continue
        output = parse(node.kind, call)
        if output is not None:
            outputs[node_id] = output
    return outputs
