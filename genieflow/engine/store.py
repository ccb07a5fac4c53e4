from __future__ import annotations

import logging

from genieflow.engine.ids import IdGenerator
from genieflow.engine.session import PipelineSession
from genieflow.models.pipeline import Pipeline, new_pipeline

logger = logging.getLogger("genieflow.store")


class SessionStore:
    """Process-memory registry of pipeline sessions."""

    def __init__(self, ids: IdGenerator | None = None) -> None:
        self.ids = ids or IdGenerator()
        self._sessions: dict[str, PipelineSession] = {}

    def create(self, pipeline: Pipeline | None = None, system_prompt: str | None = None) -> PipelineSession:
        if pipeline is None:
            pipeline = new_pipeline(self.ids.pipeline_id(), system_prompt)
        session = PipelineSession(pipeline, ids=self.ids)
        self._sessions[session.id] = session
        logger.info("Created session %s (%d nodes)", session.id, len(pipeline.nodes))
        return session

    def get(self, pipeline_id: str) -> PipelineSession | None:
        return self._sessions.get(pipeline_id)

    def delete(self, pipeline_id: str) -> bool:
        session = self._sessions.pop(pipeline_id, None)
        if session is None:
            return False
        for task in session.pending_followups():
            task.cancel()
        return True

    def list_all(self) -> list[PipelineSession]:
        return list(self._sessions.values())

    @property
    def count(self) -> int:
        return len(self._sessions)


# Global singleton
session_store = SessionStore()
