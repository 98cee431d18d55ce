"""HTTP surface: the chat loop as a server-sent-events stream."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from jobscout import __version__
from jobscout.bootstrap import build_orchestrator
from jobscout.config import Settings, get_settings
from jobscout.core.events import QueueSink, encode_sse
from jobscout.core.orchestrator import Orchestrator, RunOutcome
from jobscout.core.provider import ModelProvider
from jobscout.core.session import ChatRequest, HistoryStore
from jobscout.tools.registry import CapabilityRegistry


class ChatIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(min_length=1)
    agent_id: str = Field(alias="agentId", min_length=1)
    session_id: str | None = Field(default=None, alias="sessionId")


class HealthOut(BaseModel):
    status: str
    version: str


def create_app(
    settings: Settings | None = None,
    *,
    registry: CapabilityRegistry | None = None,
    provider: ModelProvider | None = None,
    history: HistoryStore | None = None,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """Build the FastAPI app around one shared orchestrator."""
    if orchestrator is None:
        orchestrator = build_orchestrator(
            settings or get_settings(),
            registry=registry,
            provider=provider,
            history=history,
        )

    app = FastAPI(title="jobscout", version=__version__)
    app.state.orchestrator = orchestrator
    runs: set[asyncio.Task[RunOutcome]] = set()

    @app.get("/health", response_model=HealthOut, tags=["Health"])
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/chat", tags=["Chat"])
    async def chat(payload: ChatIn, request: Request) -> StreamingResponse:
        """
        Run the assistant loop for one message and stream its events.

        Each event is one ``data:`` frame; the stream ends after a ``complete``
        or ``error`` frame.
        """
        sink = QueueSink()
        disconnected = asyncio.Event()

        async def is_cancelled() -> bool:
            if disconnected.is_set() or await request.is_disconnected():
                sink.detach()
                return True
            return False

        async def run() -> RunOutcome:
            try:
                return await orchestrator.run(
                    ChatRequest(message=payload.message, agent_id=payload.agent_id, session_id=payload.session_id),
                    sink,
                    is_cancelled=is_cancelled,
                )
            finally:
                await sink.close()

        async def event_generator() -> AsyncIterator[str]:
            task = asyncio.create_task(run())
            runs.add(task)
            task.add_done_callback(runs.discard)
            finished = False
            try:
                async for event in sink.events():
                    yield encode_sse(event)
                finished = True
            finally:
                if not finished:
                    logger.info("chat.client.disconnected")
                    disconnected.set()
                    sink.detach()

        return StreamingResponse(event_generator(), media_type="text/event-stream")

    return app
