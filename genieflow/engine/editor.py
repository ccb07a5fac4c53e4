"""Pipeline editing primitives.

Every operation returns a brand-new ``Pipeline`` built from copied nodes and
leaves its input untouched. Operations that reference an unknown node id, or
that would displace the fixed system prompt node, return the pipeline
unchanged.
"""

from __future__ import annotations

import logging

from genieflow.models.pipeline import (
    CONFIG_BY_KIND,
    SYSTEM_PROMPT_NODE_ID,
    NodeConfig,
    Pipeline,
    PipelineNode,
)

logger = logging.getLogger("genieflow.editor")


def _rebuild(pipeline: Pipeline, nodes: list[PipelineNode]) -> Pipeline:
    return Pipeline(id=pipeline.id, nodes=[n.model_copy(deep=True) for n in nodes])


def node_index(pipeline: Pipeline, node_id: str) -> int:
    """Position of ``node_id`` in the pipeline, or -1."""
    for i, node in enumerate(pipeline.nodes):
        if node.id == node_id:
            return i
    return -1


def find_node(pipeline: Pipeline, node_id: str) -> PipelineNode | None:
    index = node_index(pipeline, node_id)
    return pipeline.nodes[index] if index >= 0 else None


def insert_node(pipeline: Pipeline, node: PipelineNode, index: int | None = None) -> Pipeline:
    """Insert ``node`` at ``index`` (append when None). Index 0 is reserved."""
    if node_index(pipeline, node.id) >= 0:
        logger.debug("Refusing to insert duplicate node id %s", node.id)
        return pipeline
    nodes = list(pipeline.nodes)
    position = len(nodes) if index is None else max(1, min(index, len(nodes)))
    nodes.insert(position, node)
    try:
        return _rebuild(pipeline, nodes)
    except ValueError as e:
        # e.g. a second system prompt node
        logger.warning("Rejected insert of node %s: %s", node.id, e)
        return pipeline


def remove_node(pipeline: Pipeline, node_id: str) -> Pipeline:
    if node_id == SYSTEM_PROMPT_NODE_ID or node_index(pipeline, node_id) < 0:
        return pipeline
    return _rebuild(pipeline, [n for n in pipeline.nodes if n.id != node_id])


def move_node(pipeline: Pipeline, node_id: str, new_index: int) -> Pipeline:
    """Move a node to ``new_index``; nothing may be moved in front of the system prompt."""
    old_index = node_index(pipeline, node_id)
    if node_id == SYSTEM_PROMPT_NODE_ID or old_index < 0:
        return pipeline
    nodes = list(pipeline.nodes)
    node = nodes.pop(old_index)
    nodes.insert(max(1, min(new_index, len(nodes))), node)
    return _rebuild(pipeline, nodes)


def replace_config(pipeline: Pipeline, node_id: str, config: NodeConfig) -> Pipeline:
    """Swap a node's whole configuration. The config type must match the node kind."""
    index = node_index(pipeline, node_id)
    if index < 0:
        return pipeline
    current = pipeline.nodes[index]
    if type(config) is not CONFIG_BY_KIND[current.kind]:
        logger.warning(
            "Config %s does not fit node %s of kind %s",
            type(config).__name__,
            node_id,
            current.kind.value,
        )
        return pipeline
    nodes = list(pipeline.nodes)
    nodes[index] = PipelineNode(id=current.id, kind=current.kind, config=config.model_copy(deep=True))
    return _rebuild(pipeline, nodes)
