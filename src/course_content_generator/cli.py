"""CLI entry point using Hydra.

Usage examples:
  course-content topic="Recursion" subtopics="base case, call stack"
  course-content topic="Recursion" subtopics="base case" transcript_file=lecture.txt content_mode=pre-read
  course-content topic="Sorting" content_mode=assignment mcsc=3 mcmc=1 subjective=1 output_file=quiz.json
  course-content mode=analyze subtopics="base case, call stack" transcript_file=lecture.txt
  course-content mode=format input_file=draft.md output_file=quiz.json
  course-content mode=patch input_file=notes.md patch_file=fix.patch output_file=notes.md
  course-content topic="Recursion" config_file=course.yaml
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_azure_fallbacks, load_config
from .logging_config import (
    CONTINUE_WITHOUT_TRANSCRIPT,
    PipelineCallbacks,
    RichCallbacks,
    console,
    gap_table,
    metrics_table,
    setup_logging,
)
from .models import (
    AssignmentCounts,
    ContentMode,
    GenerationRequest,
    PipelineEvent,
    ProjectConfig,
)

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``ProjectConfig``.

    CLI-only keys (``mode``, ``topic``, etc.) are stripped before validation.
    When ``config_file`` is set, that YAML file is layered over the Hydra
    values. Azure credential env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    config_file = container.get("config_file")
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    if config_file:
        try:
            return load_config(config_file, base=container)
        except FileNotFoundError as e:
            console.print(f"[red]{e}[/]")
            sys.exit(1)
    config = ProjectConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _read_text(path: str | None, what: str) -> str:
    if not path:
        return ""
    p = Path(path)
    if not p.exists():
        console.print(f"[red]{what} not found: {p}[/]")
        sys.exit(1)
    return p.read_text(encoding="utf-8")


def _counts(cfg: DictConfig) -> AssignmentCounts:
    return AssignmentCounts(
        mcsc=cfg.get("mcsc", 2),
        mcmc=cfg.get("mcmc", 2),
        subjective=cfg.get("subjective", 1),
    )


def _to_request(cfg: DictConfig) -> GenerationRequest:
    """Build the GenerationRequest from CLI-only keys."""
    topic = (cfg.get("topic") or "").strip()
    if not topic:
        console.print("[red]topic is required for run mode[/]")
        sys.exit(1)
    try:
        mode = ContentMode(cfg.get("content_mode", "lecture"))
    except ValueError:
        choices = ", ".join(m.value for m in ContentMode)
        console.print(f"[red]Unknown content_mode: {cfg.content_mode!r}. Choose from: {choices}[/]")
        sys.exit(1)
    return GenerationRequest(
        topic=topic,
        subtopics=cfg.get("subtopics") or "",
        mode=mode,
        transcript=_read_text(cfg.get("transcript_file"), "Transcript file"),
        assignment_counts=_counts(cfg) if mode == ContentMode.ASSIGNMENT else None,
        additional_instructions=cfg.get("instructions") or "",
    )


def _write_output(path: str | None, text: str) -> None:
    if path:
        Path(path).write_text(text, encoding="utf-8")
        console.print(f"[green]Written to {path}[/]")
    else:
        console.print(text, markup=False, highlight=False)


def render_events(events: Any, callbacks: PipelineCallbacks) -> PipelineEvent | None:
    """Feed *events* to *callbacks* in order; return the terminal event, if any."""
    for event in events:
        if event.type == "step":
            callbacks.on_step(event.agent, event.message)
        elif event.type == "chunk":
            callbacks.on_chunk(event.content)
        elif event.type == "gap_analysis":
            callbacks.on_gap_analysis(event.content)
        elif event.type == "replace":
            callbacks.on_replace(event.content)
        elif event.type == "formatted":
            callbacks.on_formatted(event.content)
        elif event.type == "complete":
            callbacks.on_complete(event.content, event.cost)
            return event
        elif event.type == "error":
            callbacks.on_error(event.message)
            return event
        elif event.type == "mismatch":
            return event
    return None


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    request = _to_request(cfg)

    from .pipeline import Orchestrator

    callbacks = RichCallbacks(interactive=not cfg.no_interactive, stream=not cfg.quiet)
    orchestrator = Orchestrator(config)

    console.print(f"[bold]Generating {request.mode.value} for:[/] {request.topic}")
    formatted: str | None = None
    while True:
        run = orchestrator.start(request)
        terminal = None
        for event in run:
            if event.type == "formatted":
                formatted = event.content
            terminal = render_events([event], callbacks) or terminal
        if terminal is None or terminal.type != "mismatch":
            break
        if callbacks.on_mismatch(terminal.content) != CONTINUE_WITHOUT_TRANSCRIPT:
            console.print("[yellow]Revise the topic, subtopics or transcript and run again.[/]")
            sys.exit(2)
        request = request.without_transcript()

    if not cfg.quiet:
        console.print(metrics_table(orchestrator.context.metrics))

    if terminal is None or terminal.type != "complete":
        sys.exit(1)

    output_file = cfg.get("output_file")
    if formatted is not None:
        _write_output(output_file, formatted)
    elif output_file:
        _write_output(output_file, terminal.content)


def _analyze_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    subtopics = cfg.get("subtopics") or ""
    transcript = _read_text(cfg.get("transcript_file"), "Transcript file")
    if not subtopics.strip() or not transcript.strip():
        console.print("[red]subtopics and transcript_file are required for analyze mode[/]")
        sys.exit(1)

    from .pipeline import Orchestrator

    request = GenerationRequest(topic=cfg.get("topic") or "analysis", subtopics=subtopics, transcript=transcript)
    result = Orchestrator(config).analyze(request)
    console.print(gap_table(result))
    if result.is_mismatch:
        console.print("[yellow]None of the requested subtopics appear in the transcript.[/]")

    output_file = cfg.get("output_file")
    if output_file:
        _write_output(output_file, result.model_dump_json(by_alias=True, indent=2))


def _format_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    content = _read_text(cfg.get("input_file"), "Input file")
    if not content.strip():
        console.print("[red]input_file is required for format mode[/]")
        sys.exit(1)

    from .agents.assignment_formatter import items_to_json
    from .pipeline import Orchestrator

    outcome = Orchestrator(config).agents.formatter.format(content, _counts(cfg))
    if not outcome.result:
        console.print("[red]No valid assignment questions could be extracted.[/]")
        sys.exit(1)
    console.print(f"[green]{len(outcome.result)} questions formatted[/]"
                  + ("" if outcome.invoked else " (no model call needed)"))
    _write_output(cfg.get("output_file"), items_to_json(outcome.result))


def _patch_mode(cfg: DictConfig) -> None:
    original = _read_text(cfg.get("input_file"), "Input file")
    patch_text = _read_text(cfg.get("patch_file"), "Patch file")
    if not patch_text.strip():
        console.print("[red]input_file and patch_file are required for patch mode[/]")
        sys.exit(1)

    from .tools.patcher import apply_patch_text

    result = apply_patch_text(original, patch_text)
    console.print(
        f"[bold]Applied {len(result.applied)} block(s), skipped {len(result.skipped)}[/]"
    )
    for block in result.skipped:
        console.print(f"  [yellow]Not found:[/] {block.search[:50]!r}")
    _write_output(cfg.get("output_file"), result.text)


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "analyze": _analyze_mode,
    "format": _format_mode,
    "patch": _patch_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
