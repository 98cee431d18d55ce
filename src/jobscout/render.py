"""Terminal renderer for the chat command."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

from jobscout.core.events import (
    BudgetUpdate,
    Completion,
    ErrorEvent,
    StatusEvent,
    StreamEvent,
    TextDelta,
    ToolResultEvent,
    ToolStart,
)
from jobscout.core.orchestrator import RunOutcome
from jobscout.tools.registry import render_params


class Renderer:
    """Renders stream events as they arrive using Rich."""

    def __init__(self, console: Console | None = None, *, show_usage: bool = False) -> None:
        self.console = console or Console()
        self._show_usage = show_usage
        self._in_text = False

    def user_message(self, message: str) -> None:
        self.console.print(f"[bold cyan]You:[/bold cyan] {escape(message)}")

    def error(self, message: str) -> None:
        self._end_text()
        self.console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def render(self, event: StreamEvent) -> None:
        if isinstance(event, TextDelta):
            if not self._in_text:
                self.console.print("[bold yellow]Assistant:[/bold yellow] ", end="")
                self._in_text = True
            self.console.print(escape(event.content), end="", soft_wrap=True)
            return

        self._end_text()
        if isinstance(event, ToolStart):
            self.console.print(f"[dim]→ {escape(event.tool)}({escape(render_params(event.params))})[/dim]")
        elif isinstance(event, ToolResultEvent):
            if event.success:
                self.console.print(f"[green]✓ {escape(event.tool)}[/green]")
            else:
                self.console.print(f"[red]✗ {escape(event.tool)}: {escape(event.error or 'failed')}[/red]")
        elif isinstance(event, StatusEvent):
            self.console.print(f"[dim]{escape(event.content)}[/dim]")
        elif isinstance(event, BudgetUpdate) and self._show_usage:
            self.console.print(
                f"[dim]context {event.context_percentage:.2f}% "
                f"({event.total_tokens} tokens, iteration {event.iteration})[/dim]"
            )
        elif isinstance(event, ErrorEvent):
            self.console.print(f"[bold red]Error:[/bold red] {escape(event.error)}")
        elif isinstance(event, Completion):
            self.console.print(f"[dim]session {escape(event.session_id)} ({escape(event.decision)})[/dim]")

    def usage(self, outcome: RunOutcome) -> None:
        self._end_text()
        budget = outcome.budget
        self.console.print(
            f"[dim]{outcome.iterations} model call(s), {len(outcome.invocations)} tool call(s), "
            f"{budget.input_tokens} in / {budget.output_tokens} out tokens[/dim]"
        )

    def _end_text(self) -> None:
        if self._in_text:
            self.console.print()
            self._in_text = False
