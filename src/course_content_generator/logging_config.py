"""Rich console setup and pipeline event rendering."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .context import RunMetrics
from .models import GapAnalysisResult

console = Console()

CONTINUE_WITHOUT_TRANSCRIPT = "continue_without_transcript"
REVISE_INPUTS = "revise_inputs"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # Provider SDKs log every HTTP request at INFO.
    for noisy in ("httpx", "openai", "autogen.oai.client"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


# ---------------------------------------------------------------------------
# Event callbacks protocol
# ---------------------------------------------------------------------------


class PipelineCallbacks(Protocol):
    """Protocol for rendering pipeline events."""

    def on_step(self, agent: str, message: str) -> None: ...
    def on_chunk(self, content: str) -> None: ...
    def on_gap_analysis(self, result: GapAnalysisResult) -> None: ...
    def on_replace(self, content: str) -> None: ...
    def on_formatted(self, content: str) -> None: ...
    def on_complete(self, content: str, cost: float) -> None: ...
    def on_mismatch(self, result: GapAnalysisResult) -> str: ...
    def on_error(self, message: str) -> None: ...


def gap_table(result: GapAnalysisResult) -> Table:
    table = Table(title="Transcript Coverage", show_lines=True)
    table.add_column("Status", style="bold")
    table.add_column("Subtopics")
    table.add_row("[green]Covered[/]", ", ".join(result.covered) or "—")
    table.add_row("[yellow]Partial[/]", ", ".join(result.partially_covered) or "—")
    table.add_row("[red]Not covered[/]", ", ".join(result.not_covered) or "—")
    if result.transcript_topics:
        table.add_row("[dim]Transcript topics[/]", ", ".join(result.transcript_topics))
    return table


def metrics_table(metrics: RunMetrics) -> Table:
    table = Table(title="Agent Calls")
    table.add_column("Agent", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Avg s", justify="right")
    table.add_column("Tokens in/out", justify="right")
    table.add_column("Cost $", justify="right")
    for agent, s in metrics.summary_by_agent().items():
        table.add_row(
            agent,
            str(s.count),
            f"{s.avg_time:.1f}",
            f"{s.input_tokens}/{s.output_tokens}",
            f"{s.cost:.4f}",
        )
    return table


class RichCallbacks:
    """Rich-based implementation of PipelineCallbacks."""

    def __init__(self, *, interactive: bool = False, stream: bool = True) -> None:
        self.interactive = interactive
        self.stream = stream
        self._streaming = False

    def _end_stream(self) -> None:
        if self._streaming:
            console.print()
            self._streaming = False

    def on_step(self, agent: str, message: str) -> None:
        self._end_stream()
        console.rule(f"[bold blue]{agent}[/] — {message}")

    def on_chunk(self, content: str) -> None:
        if self.stream:
            console.print(content, end="", markup=False, highlight=False)
            self._streaming = True

    def on_gap_analysis(self, result: GapAnalysisResult) -> None:
        self._end_stream()
        console.print(gap_table(result))

    def on_replace(self, content: str) -> None:
        self._end_stream()
        console.print(f"  [dim]Content revised ({len(content)} chars)[/]")

    def on_formatted(self, content: str) -> None:
        self._end_stream()
        console.print("  [green]Assignment questions formatted[/]")

    def on_complete(self, content: str, cost: float) -> None:
        self._end_stream()
        console.print(f"\n  [green]Complete[/] — estimated cost [bold]${cost:.6f}[/]")

    def on_mismatch(self, result: GapAnalysisResult) -> str:
        """Ask how to proceed when the transcript covers none of the subtopics."""
        self._end_stream()
        console.print(
            "\n  [yellow]The transcript does not cover any of the requested subtopics.[/]"
        )
        if not self.interactive:
            return REVISE_INPUTS

        while True:
            choice = console.input(
                "[bold]\\[c]ontinue without transcript / \\[r]evise inputs:[/] "
            ).strip().lower()
            if choice in ("c", "continue"):
                return CONTINUE_WITHOUT_TRANSCRIPT
            elif choice in ("r", "revise", "q", "quit"):
                return REVISE_INPUTS
            else:
                console.print("[yellow]Please enter 'c' or 'r'.[/]")

    def on_error(self, message: str) -> None:
        self._end_stream()
        console.print(f"  [red]ERROR:[/] {message}")
