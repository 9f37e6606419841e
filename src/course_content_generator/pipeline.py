"""Pipeline — sequential, cancellable, streaming orchestration of the agents.

Phase 1: DETECTING   — CourseDetector classifies the domain (never fatal)
Phase 2: ANALYZING   — GapAnalyzer checks transcript coverage (transcript + subtopics only)
Phase 3: DRAFTING    — Drafter streams the first draft as chunk events
Phase 4: SANITIZING  — FactSanitizer removes unsupported claims (transcript only)
Phase 5: REVIEWING ⇄ REFINING — score, then patch, at most ``review_max_rounds`` times
Phase 6: FORMATTING  — AssignmentFormatter emits LMS questions (assignment mode only)

Every run that is not cancelled ends in exactly one terminal event:
``complete``, ``error`` or ``mismatch``.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from .agents.assignment_formatter import AssignmentFormatter, items_to_json
from .agents.base import AgentOutcome, AgentPrompt
from .agents.course_detector import CourseDetector
from .agents.drafter import Drafter
from .agents.fact_sanitizer import FactSanitizer
from .agents.gap_analyzer import GapAnalyzer
from .agents.polish_refiner import PolishRefiner
from .agents.quality_reviewer import QualityReviewer
from .context import AgentCallRecord, PipelineContext, ResultCache
from .errors import GenerationError, RunConsumedError
from .models import (
    TERMINAL_STATES,
    AssignmentCounts,
    ChunkEvent,
    CompleteEvent,
    ContentMode,
    CourseContext,
    ErrorEvent,
    FormattedEvent,
    GapAnalysisEvent,
    GapAnalysisResult,
    GenerationRequest,
    MismatchEvent,
    PipelineEvent,
    PipelineState,
    ProjectConfig,
    ReplaceEvent,
    StepEvent,
)
from .tools.content_cleaner import sanitize_ai_patterns
from .tools.cost import cost as estimate_cost
from .tools.cost import estimate_tokens
from .transport import AG2Transport, CancellationToken, LLMTransport


class _Cancelled(Exception):
    """Raised internally once the cancellation token is observed."""


# ---------------------------------------------------------------------------
# Run cost
# ---------------------------------------------------------------------------

class RunCost:
    """Monotonically non-decreasing spend accumulator for one run."""

    def __init__(self) -> None:
        self._total = 0.0
        self.history: list[float] = []

    def add(self, amount: float) -> None:
        if amount < 0:
            raise ValueError(f"cost increments must be non-negative, got {amount}")
        self._total += amount
        self.history.append(self._total)

    @property
    def total(self) -> float:
        return self._total

    def rounded(self) -> float:
        return round(self._total, 6)


# ---------------------------------------------------------------------------
# Agent bundle
# ---------------------------------------------------------------------------

@dataclass
class AgentSet:
    """The seven pipeline agents. Any object with the same methods can stand in."""
    detector: Any
    analyzer: Any
    drafter: Any
    sanitizer: Any
    reviewer: Any
    refiner: Any
    formatter: Any

    @classmethod
    def from_config(cls, config: ProjectConfig, transport: LLMTransport) -> AgentSet:
        return cls(
            detector=CourseDetector(transport, config),
            analyzer=GapAnalyzer(transport, config),
            drafter=Drafter(transport, config),
            sanitizer=FactSanitizer(transport, config),
            reviewer=QualityReviewer(transport, config),
            refiner=PolishRefiner(transport, config),
            formatter=AssignmentFormatter(transport, config),
        )


# ---------------------------------------------------------------------------
# Generation run
# ---------------------------------------------------------------------------

class GenerationRun:
    """One pull-driven pass through the pipeline. Iterable exactly once."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        request: GenerationRequest,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self.request = request
        self.cancel_token = cancel_token or CancellationToken()
        self.state = PipelineState.IDLE
        self.cost = RunCost()
        self.course_context: CourseContext | None = None
        self.gap_analysis: GapAnalysisResult | None = None
        self._config = orchestrator.config
        self._agents = orchestrator.agents
        self._context = orchestrator.context
        self._log = orchestrator.context.logger
        self._consumed = False

    def cancel(self) -> None:
        self.cancel_token.cancel()

    @property
    def finished(self) -> bool:
        """True once the run reached complete, mismatch, aborted or error."""
        return self.state in TERMINAL_STATES

    def __iter__(self) -> Iterator[PipelineEvent]:
        if self._consumed:
            raise RunConsumedError("GenerationRun can only be iterated once; start a new run")
        self._consumed = True
        return self._events()

    # -- helpers ------------------------------------------------------------

    def _enter(self, state: PipelineState) -> None:
        self._log.debug("Pipeline state %s -> %s", self.state.value, state.value)
        self.state = state

    def _checkpoint(self) -> None:
        if self.cancel_token.cancelled:
            raise _Cancelled()

    def _meter(self, agent: Any, prompt: AgentPrompt | None, output: str, started: float, success: bool = True) -> None:
        """Add one invocation's estimated cost to the run and the metrics sink."""
        if prompt is None:
            return
        input_tokens = estimate_tokens(prompt.text)
        output_tokens = estimate_tokens(output)
        amount = estimate_cost(agent.target_model, input_tokens, output_tokens, self._config.pricing)
        self.cost.add(amount)
        self._context.metrics.record(AgentCallRecord(
            agent=agent.identity,
            model=agent.target_model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=amount,
            duration=time.monotonic() - started,
            success=success,
        ))

    def _meter_outcome(self, agent: Any, outcome: AgentOutcome, started: float) -> None:
        self._meter(agent, outcome.prompt, outcome.raw, started, success=not outcome.failed)

    # -- event stream -------------------------------------------------------

    def _events(self) -> Iterator[PipelineEvent]:
        try:
            yield from self._phases()
        except _Cancelled:
            self._abort()
        except Exception as e:
            if self.cancel_token.cancelled:
                self._abort()
                return
            self._log.exception("Generation failed during %s", self.state.value)
            self._enter(PipelineState.ERROR)
            yield ErrorEvent(message=str(e) or type(e).__name__)

    def _abort(self) -> None:
        self._log.info("Generation cancelled during %s", self.state.value)
        self._enter(PipelineState.ABORTED)

    def _phases(self) -> Iterator[PipelineEvent]:
        request = self.request
        agents = self._agents
        token = self.cancel_token

        # Phase 1: detection
        self._checkpoint()
        self._enter(PipelineState.DETECTING)
        yield StepEvent(agent=agents.detector.identity, message="Detecting course domain...")
        started = time.monotonic()
        detected = agents.detector.detect(request, cancel_token=token)
        self._meter_outcome(agents.detector, detected, started)
        self.course_context = detected.result
        self._log.info(
            "Course domain: %s (confidence %.2f)",
            self.course_context.domain, self.course_context.confidence,
        )

        # Phase 2: gap analysis
        gap: GapAnalysisResult | None = None
        if request.has_transcript and request.subtopic_list:
            self._checkpoint()
            self._enter(PipelineState.ANALYZING)
            yield StepEvent(agent=agents.analyzer.identity, message="Analyzing transcript coverage...")
            gap = self._analyze(request)
            self._checkpoint()
            if gap is None:
                yield StepEvent(
                    agent=agents.analyzer.identity,
                    message="Gap analysis failed, skipped; continuing without coverage data",
                )
            else:
                self.gap_analysis = gap
                yield GapAnalysisEvent(content=gap)
                if gap.is_mismatch:
                    self._log.warning(
                        "Transcript covers none of the requested subtopics: %s",
                        ", ".join(gap.not_covered),
                    )
                    self._enter(PipelineState.MISMATCH)
                    yield MismatchEvent(content=gap)
                    return

        # Phase 3: drafting
        self._checkpoint()
        self._enter(PipelineState.DRAFTING)
        yield StepEvent(agent=agents.drafter.identity, message=f"Drafting {request.mode.value} content...")
        prompt = agents.drafter.build_prompt(request, self.course_context, gap)
        started = time.monotonic()
        fragments: list[str] = []
        for fragment in agents.drafter.invoke_streaming(prompt, cancel_token=token):
            self._checkpoint()
            fragments.append(fragment)
            yield ChunkEvent(content=fragment)
        self._checkpoint()
        content = "".join(fragments)
        self._meter(agents.drafter, prompt, content, started)
        if not content.strip():
            raise GenerationError("Drafter returned no content")

        # Phase 4: fact sanitizing
        if request.has_transcript:
            self._checkpoint()
            self._enter(PipelineState.SANITIZING)
            yield StepEvent(agent=agents.sanitizer.identity, message="Checking facts against the transcript...")
            started = time.monotonic()
            sanitized = agents.sanitizer.sanitize(content, request.transcript, cancel_token=token)
            self._meter_outcome(agents.sanitizer, sanitized, started)
            self._checkpoint()
            if sanitized.result != content:
                content = sanitized.result
                yield ReplaceEvent(content=content)

        # Phase 5: review / refine loop
        max_rounds = self._config.review_max_rounds
        for round_no in range(1, max_rounds + 1):
            self._checkpoint()
            self._enter(PipelineState.REVIEWING)
            yield StepEvent(
                agent=agents.reviewer.identity,
                message=f"Reviewing quality (round {round_no}/{max_rounds})...",
            )
            started = time.monotonic()
            reviewed = agents.reviewer.review(
                content, request.mode, self.course_context, request.transcript, cancel_token=token,
            )
            self._meter_outcome(agents.reviewer, reviewed, started)
            review = reviewed.result
            self._log.info("Review round %d: score %.1f/10", round_no, review.score)
            if not review.needs_polish:
                break

            self._checkpoint()
            self._enter(PipelineState.REFINING)
            yield StepEvent(
                agent=agents.refiner.identity,
                message=f"Refining content (score {review.score:g}/10)...",
            )
            started = time.monotonic()
            refined = agents.refiner.refine(content, review, cancel_token=token)
            self._meter_outcome(agents.refiner, refined, started)
            self._checkpoint()
            if refined.result.text != content:
                content = refined.result.text
                yield ReplaceEvent(content=content)

        # Phase 6: formatting
        if request.mode == ContentMode.ASSIGNMENT:
            self._checkpoint()
            self._enter(PipelineState.FORMATTING)
            yield StepEvent(agent=agents.formatter.identity, message="Formatting assignment questions...")
            started = time.monotonic()
            formatted = agents.formatter.format(
                content, request.assignment_counts or AssignmentCounts(), cancel_token=token,
            )
            self._meter_outcome(agents.formatter, formatted, started)
            self._checkpoint()
            if not formatted.result:
                raise GenerationError("Formatter produced no valid assignment questions")
            yield FormattedEvent(content=items_to_json(formatted.result))

        elif self._config.strip_ai_patterns:
            cleaned = sanitize_ai_patterns(content)
            if cleaned != content:
                content = cleaned
                yield ReplaceEvent(content=content)

        self._checkpoint()
        self._enter(PipelineState.COMPLETE)
        self._log.info("Generation complete, estimated cost $%.6f", self.cost.total)
        yield CompleteEvent(content=content, cost=self.cost.rounded())

    def _analyze(self, request: GenerationRequest) -> GapAnalysisResult | None:
        """Run or reuse gap analysis; ``None`` means the analysis failed."""
        cache = self._context.cache
        key = ResultCache.make_key("gap", request.transcript[:5000], request.subtopics)
        cached = cache.get(key)
        if cached is not None:
            self._log.debug("Gap analysis cache hit")
            return cached.model_copy(deep=True)

        analyzer = self._agents.analyzer
        started = time.monotonic()
        try:
            outcome = analyzer.analyze(request.subtopics, request.transcript, cancel_token=self.cancel_token)
        except GenerationError as e:
            self._checkpoint()
            self._log.warning("Gap analysis failed, skipping: %s", e)
            self._context.metrics.record(AgentCallRecord(
                agent=analyzer.identity,
                model=analyzer.target_model,
                duration=time.monotonic() - started,
                success=False,
            ))
            return None
        self._meter_outcome(analyzer, outcome, started)
        if not outcome.result.is_empty:
            cache.set(key, outcome.result.model_copy(deep=True))
        return outcome.result


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class Orchestrator:
    """Builds generation runs over one agent set and one dependency context."""

    def __init__(
        self,
        config: ProjectConfig | None = None,
        transport: LLMTransport | None = None,
        agents: AgentSet | None = None,
        context: PipelineContext | None = None,
    ) -> None:
        self.config = config or ProjectConfig()
        if agents is None:
            agents = AgentSet.from_config(self.config, transport or AG2Transport(self.config))
        self.agents = agents
        self.context = context or PipelineContext.from_config(self.config)

    def start(self, request: GenerationRequest, cancel_token: CancellationToken | None = None) -> GenerationRun:
        return GenerationRun(self, request, cancel_token)

    def generate(
        self, request: GenerationRequest, cancel_token: CancellationToken | None = None,
    ) -> Iterator[PipelineEvent]:
        """Lazy event stream for *request*; see ``GenerationRun``."""
        return iter(self.start(request, cancel_token))

    def analyze(
        self, request: GenerationRequest, cancel_token: CancellationToken | None = None,
    ) -> GapAnalysisResult:
        """Gap analysis alone, without drafting. Transport errors propagate."""
        outcome = self.agents.analyzer.analyze(request.subtopics, request.transcript, cancel_token=cancel_token)
        return outcome.result
