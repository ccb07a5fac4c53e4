"""In-memory state of one editable pipeline.

All writes replace whole values (pipeline, context, per-node entries) so
readers holding an earlier value never see it change underneath them.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError

from genieflow.engine import editor
from genieflow.engine.ids import IdGenerator
from genieflow.models.context import (
    ConversationState,
    ExternalContent,
    PipelineContext,
    create_initial_context,
)
from genieflow.models.outputs import NodeOutput
from genieflow.models.pipeline import (
    CONFIG_BY_KIND,
    NodeConfig,
    NodeKind,
    Pipeline,
    PipelineNode,
    new_pipeline,
)

logger = logging.getLogger("genieflow.session")


class PipelineSession:
    def __init__(
        self,
        pipeline: Pipeline | None = None,
        ids: IdGenerator | None = None,
    ) -> None:
        self.ids = ids or IdGenerator()
        self.pipeline = pipeline or new_pipeline(self.ids.pipeline_id())
        self.context: PipelineContext = create_initial_context(self.pipeline.id)
        self.outputs: dict[str, NodeOutput] = {}
        self.user_inputs: dict[str, str] = {}
        self.external_context: dict[str, ExternalContent] = {}
        self.conversations: dict[str, ConversationState] = {}
        self.pending_updates: dict[str, bool] = {}
        self._used_ids: set[str] = {n.id for n in self.pipeline.nodes}
        self._followups: dict[str, set[asyncio.Task]] = {}

    @property
    def id(self) -> str:
        return self.pipeline.id

    # ── Nodes ────────────────────────────────────────────────────────

    def get_node(self, node_id: str) -> PipelineNode | None:
        return editor.find_node(self.pipeline, node_id)

    def index_of(self, node_id: str) -> int:
        return editor.node_index(self.pipeline, node_id)

    def add_node(
        self,
        kind: NodeKind,
        config: NodeConfig | dict[str, Any] | None = None,
        index: int | None = None,
        node_id: str | None = None,
    ) -> PipelineNode | None:
        """Create and insert a node.

        Returns None when the id was ever used before or the config is invalid.
        """
        node_id = node_id or self.ids.node_id(kind)
        if node_id in self._used_ids:
            logger.warning("Node id %s was already used in pipeline %s", node_id, self.id)
            return None
        if config is None:
            config = CONFIG_BY_KIND[kind]()
        try:
            node = PipelineNode.model_validate({"id": node_id, "kind": kind, "config": config})
        except ValidationError as e:
            logger.warning("Invalid %s node %s: %d error(s)", kind.value, node_id, e.error_count())
            return None
        updated = editor.insert_node(self.pipeline, node, index)
        if updated is self.pipeline:
            return None
        self.pipeline = updated
        self._used_ids.add(node_id)
        logger.info("Added %s node %s to pipeline %s", kind.value, node_id, self.id)
        return node

    def remove_node(self, node_id: str) -> bool:
        updated = editor.remove_node(self.pipeline, node_id)
        if updated is self.pipeline:
            return False
        self.pipeline = updated
        self._drop_node_state(node_id)
        logger.info("Removed node %s from pipeline %s", node_id, self.id)
        return True

    def move_node(self, node_id: str, index: int) -> bool:
        updated = editor.move_node(self.pipeline, node_id, index)
        if updated is self.pipeline:
            return False
        self.pipeline = updated
        return True

    def update_config(self, node_id: str, config: NodeConfig | dict[str, Any]) -> bool:
        node = self.get_node(node_id)
        if node is None:
            return False
        if isinstance(config, dict):
            try:
                config = CONFIG_BY_KIND[node.kind].model_validate(config)
            except ValidationError as e:
                logger.warning("Invalid config for node %s: %d error(s)", node_id, e.error_count())
                return False
        updated = editor.replace_config(self.pipeline, node_id, config)
        if updated is self.pipeline:
            return False
        self.pipeline = updated
        return True

    def merge_config(self, node_id: str, partial: dict[str, Any]) -> bool:
        """Replace a node's config with a copy that has ``partial`` applied."""
        node = self.get_node(node_id)
        if node is None or not partial:
            return False
        merged = {**node.config.model_dump(), **partial}
        return self.update_config(node_id, merged)

    # ── Per-node state ───────────────────────────────────────────────

    def set_output(self, node_id: str, output: NodeOutput) -> None:
        self.outputs = {**self.outputs, node_id: output}

    def set_user_input(self, node_id: str, value: str) -> None:
        self.user_inputs = {**self.user_inputs, node_id: value}

    def set_external_content(self, node_id: str, content: ExternalContent) -> None:
        self.external_context = {**self.external_context, node_id: content}

    def get_conversation(self, node_id: str) -> ConversationState:
        return self.conversations.get(node_id) or ConversationState()

    def set_conversation(self, node_id: str, conversation: ConversationState) -> None:
        self.conversations = {**self.conversations, node_id: conversation}

    def mark_updated(self, node_id: str) -> None:
        self.pending_updates = {**self.pending_updates, node_id: True}

    def acknowledge_update(self, node_id: str) -> None:
        self.pending_updates = {k: v for k, v in self.pending_updates.items() if k != node_id}

    def has_pending_update(self, node_id: str) -> bool:
        return self.pending_updates.get(node_id, False)

    # ── Follow-up tasks ──────────────────────────────────────────────

    def track_followup(self, node_id: str, task: asyncio.Task) -> None:
        """Tie a scheduled task to the node's lifetime; removal cancels it."""
        tasks = self._followups.setdefault(node_id, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    def pending_followups(self) -> list[asyncio.Task]:
        return [t for tasks in self._followups.values() for t in tasks if not t.done()]

    def _drop_node_state(self, node_id: str) -> None:
        for task in self._followups.pop(node_id, set()):
            task.cancel()
        self.outputs = {k: v for k, v in self.outputs.items() if k != node_id}
        self.user_inputs = {k: v for k, v in self.user_inputs.items() if k != node_id}
        self.external_context = {k: v for k, v in self.external_context.items() if k != node_id}
        self.conversations = {k: v for k, v in self.conversations.items() if k != node_id}
        self.pending_updates = {k: v for k, v in self.pending_updates.items() if k != node_id}

    def snapshot(self) -> dict[str, Any]:
        """Read-only view for rendering layers."""
        return {
            "pipeline": self.pipeline.model_dump(mode="json"),
            "context": self.context.model_dump(mode="json"),
            "outputs": {k: v.model_dump(mode="json", by_alias=True) for k, v in self.outputs.items()},
            "user_inputs": dict(self.user_inputs),
            "external_context": {k: v.model_dump(mode="json") for k, v in self.external_context.items()},
            "conversations": {k: v.model_dump(mode="json") for k, v in self.conversations.items()},
            "pending_updates": dict(self.pending_updates),
        }
