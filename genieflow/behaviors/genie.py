"""Genie: a named character with a backstory and its own conversation.

Inference calls further down the pipeline can rewrite the backstory through
the genie's ``send_message_to_<name>`` tool.
"""

from __future__ import annotations

from typing import Any

from genieflow.behaviors.base import format_turns
from genieflow.models.context import ConversationState
from genieflow.models.pipeline import GenieConfig

INTRODUCTION_PROMPT = "Introduce yourself."


class GenieBehavior:
    def build_identity_prompt(self, config: GenieConfig, conversation: ConversationState) -> str:
        prompt = f"You are {config.name}. Act as {config.name} would act. {config.system_prompt}"
        if conversation.messages:
            prompt += "\n\nYour previous conversation:\n"
            prompt += format_turns(conversation, config.name)
        return prompt

    def format_context_for_others(self, config: GenieConfig, conversation: ConversationState) -> str:
        context = f"Genie Context (name: {config.name}):\n"
        context += f"[Backstory: {config.system_prompt}]\n\nConversation:\n"
        context += format_turns(conversation, config.name)
        return context

    def on_external_update(self, config: GenieConfig, update: dict[str, Any]) -> dict[str, Any]:
        backstory = update.get("backstory") or update.get("message")
        if isinstance(backstory, str) and backstory.strip():
            return {"system_prompt": backstory.strip()}
        return {}

    def get_initialization_prompt(self, config: GenieConfig) -> str:
        return INTRODUCTION_PROMPT
