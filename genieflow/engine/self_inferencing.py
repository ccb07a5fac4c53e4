"""Self-inferencing nodes: independent conversations inside a pipeline.

A self-inferencing node (a genie) talks to the model on its own, outside the
main pipeline flow, and keeps its own turn history. Inference calls further
down the pipeline can rewrite its configuration through its message tool;
when the node opts in it then answers on its own after a short delay.

Each node runs at most one call at a time. A trigger that arrives while the
node is busy is rejected, not queued.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Sequence

from genieflow.behaviors.registry import get_behavior
from genieflow.config import settings
from genieflow.engine.inference import InferenceInvoker
from genieflow.engine.prompt_builder import PromptOptions, build_prompt
from genieflow.engine.session import PipelineSession
from genieflow.engine.tools import MessageToolTarget, parse_tool_name
from genieflow.models.context import Message, RawToolCall
from genieflow.models.execution import RunStatus, SelfInferenceOutcome
from genieflow.models.pipeline import GenieConfig, PipelineNode

logger = logging.getLogger("genieflow.self_inferencing")

AUTO_RESPOND_MESSAGE = "Your backstory has been updated. Say something new."


class SelfInferencingManager:
    def __init__(
        self,
        invoker: InferenceInvoker,
        auto_respond_delay: float | None = None,
    ) -> None:
        self.invoker = invoker
        self.auto_respond_delay = (
            settings.auto_respond_delay_seconds if auto_respond_delay is None else auto_respond_delay
        )
        # (session id, node id) pairs with a call in flight
        self._running: set[tuple[str, str]] = set()

    def is_running(self, session: PipelineSession, node_id: str) -> bool:
        return (session.id, node_id) in self._running

    async def self_inference(
        self,
        session: PipelineSession,
        node_id: str,
        user_message: str,
    ) -> SelfInferenceOutcome:
        """Send ``user_message`` to a self-inferencing node and record the exchange."""
        node = session.get_node(node_id)
        behavior = get_behavior(node.kind) if node is not None else None
        if node is None or behavior is None:
            logger.debug("Self-inference skipped: %s is not a self-inferencing node", node_id)
            return SelfInferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED)

        key = (session.id, node_id)
        if key in self._running:
            logger.info("Self-inference for %s rejected: a call is already running", node_id)
            return SelfInferenceOutcome(
                node_id=node_id,
                status=RunStatus.REJECTED,
                error="A call for this node is already in flight",
            )

        self._running.add(key)
        try:
            config: GenieConfig = node.config
            conversation = session.get_conversation(node_id)
            index = session.index_of(node_id)
            system_node = session.pipeline.nodes[0]
            system_prompt = build_prompt(
                system_node.config.prompt,
                session.pipeline.nodes[1:index],
                session.conversations,
                session.external_context,
                session.user_inputs,
                PromptOptions(
                    additional_prompt=behavior.build_identity_prompt(config, conversation),
                    include_conversations=config.include_other_conversations,
                ),
                outputs=session.outputs,
            )
            messages = [
                Message(role="system", content=system_prompt),
                Message(role="user", content=user_message),
            ]
            result = await self.invoker.invoke(messages, [], config)
            if not result.ok:
                return SelfInferenceOutcome(node_id=node_id, status=RunStatus.FAILED, error=result.error)

            if session.get_node(node_id) is None:
                # Removed while the call was in flight
                return SelfInferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED)
            session.set_conversation(
                node_id,
                session.get_conversation(node_id).appended(user_message, result.text),
            )
            logger.info("Self-inference for %s completed", node_id)
            return SelfInferenceOutcome(node_id=node_id, status=RunStatus.COMPLETED, reply=result.text)
        finally:
            self._running.discard(key)

    async def initialize(self, session: PipelineSession, node_id: str) -> SelfInferenceOutcome:
        """Send the node kind's seed message, e.g. when its configuration is first saved."""
        node = session.get_node(node_id)
        behavior = get_behavior(node.kind) if node is not None else None
        if node is None or behavior is None:
            return SelfInferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED)
        return await self.self_inference(session, node_id, behavior.get_initialization_prompt(node.config))

    def apply_external_updates(
        self,
        session: PipelineSession,
        preceding_nodes: Sequence[PipelineNode],
        tool_calls: Sequence[RawToolCall],
        owner_by_tool_name: Mapping[str, str],
    ) -> list[str]:
        """Apply message-tool updates from a main-pipeline reply. Returns updated node ids."""
        updated: list[str] = []
        for node in preceding_nodes:
            behavior = get_behavior(node.kind)
            if behavior is None:
                continue
            calls = [
                call
                for call in tool_calls
                if owner_by_tool_name.get(call.name) == node.id
                and isinstance(parse_tool_name(call.name), MessageToolTarget)
            ]
            if not calls:
                continue

            current = session.get_node(node.id)
            if current is None:
                continue
            partial: dict = {}
            for call in calls:
                partial.update(behavior.on_external_update(current.config, call.input))
            if not partial or not session.merge_config(node.id, partial):
                continue

            session.mark_updated(node.id)
            updated.append(node.id)
            logger.info("Applied external update to %s: %s", node.id, sorted(partial))

            if getattr(current.config, "auto_respond_on_update", False):
                self.schedule_followup(session, node.id, AUTO_RESPOND_MESSAGE)
        return updated

    def schedule_followup(self, session: PipelineSession, node_id: str, message: str) -> asyncio.Task:
        """Run a self-inference after ``auto_respond_delay`` without awaiting it."""

        async def _followup() -> None:
            await asyncio.sleep(self.auto_respond_delay)
            if session.get_node(node_id) is None:
                return
            outcome = await self.self_inference(session, node_id, message)
            if outcome.status != RunStatus.COMPLETED:
                logger.warning(
                    "Auto-response for %s ended with %s: %s",
                    node_id,
                    outcome.status.value,
                    outcome.error,
                )

        task = asyncio.get_running_loop().create_task(_followup())
        session.track_followup(node_id, task)
        return task

    async def wait_for_followups(self, session: PipelineSession) -> None:
        """Wait until every scheduled follow-up of ``session`` has finished."""
        pending = session.pending_followups()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
