from __future__ import annotations

import itertools
import uuid

from genieflow.models.pipeline import NodeKind


class IdGenerator:
    """Monotonic node/pipeline id source with a process-unique seed.

    Pass a fixed ``seed`` to get deterministic ids in tests.
    """

    def __init__(self, seed: str | None = None) -> None:
        self.seed = seed if seed is not None else uuid.uuid4().hex[:6]
        self._counter = itertools.count(1)

    def node_id(self, kind: NodeKind) -> str:
        return f"{kind.value.replace('_', '-')}-{self.seed}-{next(self._counter)}"

    def pipeline_id(self) -> str:
        return f"pipe_{self.seed}_{next(self._counter)}"
