from __future__ import annotations

from genieflow.behaviors.base import SelfInferencingBehavior
from genieflow.behaviors.genie import GenieBehavior
from genieflow.models.pipeline import NodeKind

# One behavior per kind in SELF_INFERENCING_KINDS
BEHAVIORS: dict[NodeKind, SelfInferencingBehavior] = {
    NodeKind.GENIE: GenieBehavior(),
}


def get_behavior(kind: NodeKind) -> SelfInferencingBehavior | None:
    return BEHAVIORS.get(kind)
