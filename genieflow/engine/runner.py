"""Pipeline runner: drives one inference step end to end.

tools for the node's segment -> system prompt from the nodes above ->
model call -> outputs routed into their nodes -> genie updates applied.
Nothing is written to the session unless the model call succeeds.
"""

from __future__ import annotations

import logging

from genieflow.engine.inference import InferenceInvoker
from genieflow.engine.prompt_builder import (
    PromptOptions,
    apply_context_mode,
    build_prompt,
    with_system_message,
    with_user_message,
)
from genieflow.engine.router import route
from genieflow.engine.self_inferencing import SelfInferencingManager
from genieflow.engine.session import PipelineSession
from genieflow.engine.tools import resolve_tools
from genieflow.llm.client import AnthropicModelClient, ModelClient
from genieflow.models.execution import InferenceOutcome, PipelineRunResult, RunStatus
from genieflow.models.context import ExternalContent
from genieflow.models.outputs import TextOutput
from genieflow.models.pipeline import InferenceConfig, NodeKind
from genieflow.models.tools import ToolResolution
from genieflow.services.url_loader import ContentFetcher, URLLoader

logger = logging.getLogger("genieflow.runner")


class PipelineRunner:
    def __init__(
        self,
        client: ModelClient | None = None,
        fetcher: ContentFetcher | None = None,
        auto_respond_delay: float | None = None,
    ) -> None:
        self.invoker = InferenceInvoker(client or AnthropicModelClient())
        self.fetcher = fetcher or URLLoader()
        self.self_inferencing = SelfInferencingManager(self.invoker, auto_respond_delay=auto_respond_delay)
        self._running: set[tuple[str, str]] = set()

    def inspect_tools(self, session: PipelineSession, node_id: str) -> ToolResolution:
        """Tools the node at ``node_id`` would offer the model."""
        index = session.index_of(node_id)
        if index < 0:
            return ToolResolution()
        return resolve_tools(session.pipeline, index)

    def build_system_prompt(self, session: PipelineSession, node_id: str) -> str:
        index = session.index_of(node_id)
        if index < 0:
            return ""
        node = session.pipeline.nodes[index]
        base = session.pipeline.nodes[0].config.prompt
        if isinstance(node.config, InferenceConfig) and node.config.system_prompt:
            base = f"{base}\n\n{node.config.system_prompt}" if base else node.config.system_prompt
        return build_prompt(
            base,
            session.pipeline.nodes[1:index],
            session.conversations,
            session.external_context,
            session.user_inputs,
            PromptOptions(include_conversations=True),
            outputs=session.outputs,
        )

    def is_running(self, session: PipelineSession, node_id: str) -> bool:
        return (session.id, node_id) in self._running

    async def run_inference(
        self,
        session: PipelineSession,
        node_id: str,
        user_message: str | None = None,
    ) -> InferenceOutcome:
        """Run the inference node ``node_id``.

        ``user_message`` defaults to the text typed into the node itself. A
        blank message skips the node without calling the model, and a second
        call for a node that is still running is rejected.
        """
        index = session.index_of(node_id)
        node = session.pipeline.nodes[index] if index >= 0 else None
        if node is None or node.kind != NodeKind.INFERENCE:
            logger.debug("Inference skipped: %s is not an inference node", node_id)
            return InferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED)

        if user_message is None:
            user_message = session.user_inputs.get(node_id, "")
        if not user_message.strip():
            logger.debug("Inference skipped: %s has no user message", node_id)
            return InferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED, error="No user message")

        key = (session.id, node_id)
        if key in self._running:
            logger.info("Inference for %s rejected: a call is already running", node_id)
            return InferenceOutcome(
                node_id=node_id,
                status=RunStatus.REJECTED,
                error="A call for this node is already in flight",
            )

        self._running.add(key)
        try:
            return await self._run_inference(session, index, node.config, user_message)
        finally:
            self._running.discard(key)

    async def _run_inference(
        self,
        session: PipelineSession,
        index: int,
        config: InferenceConfig,
        user_message: str,
    ) -> InferenceOutcome:
        pipeline = session.pipeline
        node_id = pipeline.nodes[index].id
        resolution = resolve_tools(pipeline, index)
        logger.info(
            "Running inference %s in pipeline %s with %d tool(s)",
            node_id,
            pipeline.id,
            len(resolution.tools),
        )

        system_prompt = self.build_system_prompt(session, node_id)
        context = with_user_message(with_system_message(session.context, system_prompt), user_message)
        messages = [context.system_message, *apply_context_mode(context.messages, config.context_mode)]

        result = await self.invoker.invoke(messages, resolution.tools, config)
        if not result.ok:
            return InferenceOutcome(node_id=node_id, status=RunStatus.FAILED, error=result.error)

        if session.get_node(node_id) is None:
            return InferenceOutcome(node_id=node_id, status=RunStatus.SKIPPED)

        outputs = route(result.tool_calls, resolution.owner_by_tool_name, pipeline)
        # Other nodes may have committed while the call was in flight
        current = with_user_message(with_system_message(session.context, system_prompt), user_message)
        session.context = self.invoker.commit(current, result)
        if result.text:
            session.set_output(node_id, TextOutput(content=result.text))
        for target_id, output in outputs.items():
            if session.get_node(target_id) is not None:
                session.set_output(target_id, output)

        updated = self.self_inferencing.apply_external_updates(
            session,
            pipeline.nodes[:index],
            result.tool_calls,
            resolution.owner_by_tool_name,
        )
        return InferenceOutcome(
            node_id=node_id,
            status=RunStatus.COMPLETED,
            text=result.text,
            tool_calls=result.tool_calls,
            outputs=outputs,
            updated_nodes=updated,
        )

    async def run(
        self,
        session: PipelineSession,
        user_inputs: dict[str, str] | None = None,
    ) -> PipelineRunResult:
        """Record ``user_inputs`` and run every inference node top to bottom.

        Nodes without a user message are skipped. Stops at the first failed step.
        """
        for node_id, value in (user_inputs or {}).items():
            if session.get_node(node_id) is not None:
                session.set_user_input(node_id, value)

        outcomes: list[InferenceOutcome] = []
        inference_ids = [n.id for n in session.pipeline.nodes if n.kind == NodeKind.INFERENCE]
        for node_id in inference_ids:
            outcome = await self.run_inference(session, node_id)
            outcomes.append(outcome)
            if outcome.status == RunStatus.FAILED:
                logger.error("Pipeline %s stopped at %s: %s", session.id, node_id, outcome.error)
                return PipelineRunResult(
                    pipeline_id=session.id,
                    status=RunStatus.FAILED,
                    outcomes=outcomes,
                    errors=[f"{node_id}: {outcome.error}"],
                )

        logger.info("Pipeline %s finished (%d inference steps)", session.id, len(outcomes))
        return PipelineRunResult(pipeline_id=session.id, status=RunStatus.COMPLETED, outcomes=outcomes)

    async def load_url(self, session: PipelineSession, node_id: str) -> ExternalContent | None:
        """Fetch content for a URL loader node and keep it as reference context."""
        node = session.get_node(node_id)
        if node is None or node.kind != NodeKind.URL_LOADER:
            return None
        content = await self.fetcher.fetch(node.config.url)
        if content.error:
            logger.warning("URL loader %s failed: %s", node_id, content.error)
        if session.get_node(node_id) is not None:
            session.set_external_content(node_id, content)
        return content
