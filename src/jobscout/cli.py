"""jobscout command-line interface."""

from __future__ import annotations

import asyncio

import typer
import uvicorn

from jobscout.bootstrap import build_orchestrator, build_registry
from jobscout.config import get_settings
from jobscout.core.events import CollectingSink
from jobscout.core.session import ChatRequest
from jobscout.core.termination import TerminationDecision
from jobscout.errors import ConfigurationError
from jobscout.logging_utils import configure_logging
from jobscout.render import Renderer
from jobscout.server import create_app

app = typer.Typer(name="jobscout", help="Job-search assistant tool-orchestration engine", add_completion=False)


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send to the assistant"),
    session_id: str | None = typer.Option(None, "--session-id", help="Continue an existing session"),
    agent_id: str = typer.Option("cli", "--agent-id", help="Agent id"),
    tools: str | None = typer.Option(None, "--tools", help="Tool registry factory as module:attr"),
    show_usage: bool = typer.Option(False, "--usage", help="Show context usage after each model call"),
) -> None:
    """Run one message through the assistant loop and render the stream."""

    settings = get_settings()
    configure_logging(profile="chat", level=settings.log_level)
    renderer = Renderer(show_usage=show_usage)
    try:
        orchestrator = build_orchestrator(settings, registry=build_registry(tools))
    except ConfigurationError as exc:
        renderer.error(str(exc))
        raise typer.Exit(1) from exc

    renderer.user_message(message)
    request = ChatRequest(message=message, agent_id=agent_id, session_id=session_id)
    outcome = asyncio.run(orchestrator.run(request, CollectingSink(on_event=renderer.render)))
    if show_usage:
        renderer.usage(outcome)
    if outcome.decision is TerminationDecision.STOP_ERROR:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    tools: str | None = typer.Option(None, "--tools", help="Tool registry factory as module:attr"),
) -> None:
    """Serve the chat endpoint over HTTP."""

    settings = get_settings()
    configure_logging(profile="default", level=settings.log_level)
    try:
        api = create_app(settings, registry=build_registry(tools))
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from exc
    uvicorn.run(api, host=host, port=port, log_config=None)
