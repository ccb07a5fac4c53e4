"""Shared dependencies for API routers."""

from __future__ import annotations

from functools import lru_cache

from fastapi import HTTPException

from genieflow.engine.runner import PipelineRunner
from genieflow.engine.session import PipelineSession
from genieflow.engine.store import SessionStore, session_store


@lru_cache(maxsize=1)
def get_runner() -> PipelineRunner:
    """Return the singleton PipelineRunner (Anthropic client, httpx URL loader)."""
    return PipelineRunner()


def get_store() -> SessionStore:
    return session_store


def load_session(store: SessionStore, pipeline_id: str) -> PipelineSession:
    session = store.get(pipeline_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Pipeline not found")
    return session
