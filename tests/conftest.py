from __future__ import annotations

import asyncio

import pytest

from genieflow.engine.ids import IdGenerator
from genieflow.engine.runner import PipelineRunner
from genieflow.engine.session import PipelineSession
from genieflow.llm.client import ModelRequest, ModelResponse
from genieflow.models.context import ExternalContent, RawToolCall


class FakeModelClient:
    """Replays queued responses and records every request it receives."""

    def __init__(self, *responses: ModelResponse) -> None:
        self.responses = list(responses)
        self.requests: list[ModelRequest] = []

    def queue(self, *responses: ModelResponse) -> None:
        self.responses.extend(responses)

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if not self.responses:
            return ModelResponse(text="ok")
        return self.responses.pop(0)


class SlowModelClient(FakeModelClient):
    """Blocks every call until ``release`` is set."""

    def __init__(self, *responses: ModelResponse) -> None:
        super().__init__(*responses)
        self.release = asyncio.Event()
        self.started = asyncio.Event()
        self.waiting = 0

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.waiting += 1
        self.started.set()
        await self.release.wait()
        return await super().complete(request)

    async def wait_for_calls(self, count: int) -> None:
        while self.waiting < count:
            await asyncio.sleep(0)


class FakeFetcher:
    def __init__(self, content: str = "", error: str | None = None) -> None:
        self.content = content
        self.error = error
        self.urls: list[str] = []

    async def fetch(self, url: str) -> ExternalContent:
        self.urls.append(url)
        return ExternalContent(url=url, content=self.content, error=self.error)


def tool_call(tool_name: str, /, **payload) -> RawToolCall:
    return RawToolCall(id=f"toolu_{tool_name}", name=tool_name, input=payload)


@pytest.fixture()
def ids():
    return IdGenerator(seed="t")


@pytest.fixture()
def session(ids):
    return PipelineSession(ids=ids)


@pytest.fixture()
def model():
    return FakeModelClient()


@pytest.fixture()
def fetcher():
    return FakeFetcher(content="# Docs\n\nSome reference text.")


@pytest.fixture()
def runner(model, fetcher):
    return PipelineRunner(client=model, fetcher=fetcher, auto_respond_delay=0)
