from __future__ import annotations

from typing import Any, Protocol

from genieflow.models.context import ConversationState
from genieflow.models.pipeline import GenieConfig


class SelfInferencingBehavior(Protocol):
    """Stateless strategy for one self-inferencing node kind.

    Nodes hold only configuration; the manager owns their conversation state
    and hands it to these hooks.
    """

    def build_identity_prompt(self, config: GenieConfig, conversation: ConversationState) -> str:
        """Identity text for the node's own calls, including its turn history."""
        ...

    def format_context_for_others(self, config: GenieConfig, conversation: ConversationState) -> str:
        """Context block describing this node to calls made further down the pipeline."""
        ...

    def on_external_update(self, config: GenieConfig, update: dict[str, Any]) -> dict[str, Any]:
        """Reduce a message-tool payload into a partial config update (empty when nothing applies)."""
        ...

    def get_initialization_prompt(self, config: GenieConfig) -> str:
        ...


def format_turns(conversation: ConversationState, speaker: str) -> str:
    lines = []
    for turn in conversation.messages:
        name = "User" if turn.role == "user" else speaker
        lines.append(f"{name}: {turn.content}\n")
    return "".join(lines)
