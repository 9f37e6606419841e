"""Tests for pipeline.py — Orchestrator event stream end to end."""

from __future__ import annotations

import json

import pytest

from course_content_generator.agents.base import AgentPrompt
from course_content_generator.errors import AgentInvocationError, RunConsumedError
from course_content_generator.models import (
    AssignmentCounts,
    ContentMode,
    CourseContext,
    GenerationRequest,
    PipelineState,
    ProjectConfig,
    TERMINAL_EVENT_TYPES,
)
from course_content_generator.pipeline import AgentSet, Orchestrator, RunCost
from course_content_generator.transport import CancellationToken

from conftest import MCSC_ITEM, FakeTransport, detector_reply, review_reply

PATCH = "<<<<<<< SEARCH\n{old}\n=======\n{new}\n>>>>>>> REPLACE"


def gap_reply(covered=(), partial=(), not_covered=()) -> str:
    return json.dumps({
        "covered": list(covered),
        "partiallyCovered": list(partial),
        "notCovered": list(not_covered),
        "transcriptTopics": ["recursion"],
    })


def _types(events) -> list[str]:
    return [e.type for e in events]


def _orchestrator(transport, **overrides) -> Orchestrator:
    return Orchestrator(ProjectConfig(**overrides), transport=transport)


LECTURE = GenerationRequest(topic="Recursion", subtopics="base case, call stack", mode=ContentMode.LECTURE)
WITH_TRANSCRIPT = GenerationRequest(
    topic="Recursion",
    subtopics="base case, call stack",
    transcript="Every recursive function needs a base case.",
)


class TestLectureWithoutTranscript:
    def test_event_order(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["Hello ", "world"])
        run = _orchestrator(transport).start(LECTURE)
        events = list(run)

        assert _types(events) == ["step", "step", "chunk", "chunk", "step", "complete"]
        assert [e.agent for e in events if e.type == "step"] == ["CourseDetector", "Drafter", "QualityReviewer"]
        assert events[-1].content == "Hello world"
        assert events[-1].cost > 0
        assert run.state == PipelineState.COMPLETE

    def test_no_analysis_or_sanitizing(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["x"])
        events = list(_orchestrator(transport).generate(LECTURE))
        agents = {e.agent for e in events if e.type == "step"}
        assert "GapAnalyzer" not in agents
        assert "FactSanitizer" not in agents

    def test_non_standard_detector_json_is_not_fatal(self):
        transport = FakeTransport(['{"domain": "cs", "confidence": NaN}', review_reply(9)], chunks=["x"])
        run = _orchestrator(transport).start(LECTURE)
        events = list(run)
        assert _types(events)[-1] == "complete"
        assert run.course_context == CourseContext.generic()
        assert run.state == PipelineState.COMPLETE

    def test_detector_failure_is_not_fatal(self):
        transport = FakeTransport([AgentInvocationError("m", "down"), review_reply(9)], chunks=["x"])
        run = _orchestrator(transport).start(LECTURE)
        events = list(run)
        assert events[-1].type == "complete"
        assert run.course_context.domain == "general"


class TestCoverageMismatch:
    def test_mismatch_is_terminal(self):
        transport = FakeTransport(
            [detector_reply(), gap_reply(not_covered=["base case", "call stack"])],
            chunks=["never streamed"],
        )
        run = _orchestrator(transport).start(WITH_TRANSCRIPT)
        events = list(run)

        assert _types(events) == ["step", "step", "gap_analysis", "mismatch"]
        assert events[-1].options == ["continue_without_transcript", "revise_inputs"]
        assert events[-1].content.not_covered == ["base case", "call stack"]
        assert run.state == PipelineState.MISMATCH
        assert transport.streams == []

    def test_continue_without_transcript(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["x"])
        events = list(_orchestrator(transport).generate(WITH_TRANSCRIPT.without_transcript()))
        assert events[-1].type == "complete"
        assert "gap_analysis" not in _types(events)


class TestWithTranscript:
    def test_sanitizer_replace(self):
        transport = FakeTransport(
            [detector_reply(), gap_reply(covered=["base case"], partial=["call stack"]), "Sanitized.", review_reply(9.5)],
            chunks=["Draft ", "text."],
        )
        events = list(_orchestrator(transport).generate(WITH_TRANSCRIPT))

        assert _types(events) == [
            "step", "step", "gap_analysis", "step", "chunk", "chunk", "step", "replace", "step", "complete",
        ]
        assert events[7].content == "Sanitized."
        assert events[-1].content == "Sanitized."

    def test_analysis_failure_is_skipped(self):
        transport = FakeTransport(
            [detector_reply(), AgentInvocationError("m", "timeout"), "Sanitized.", review_reply(9)],
            chunks=["Draft."],
        )
        events = list(_orchestrator(transport).generate(WITH_TRANSCRIPT))

        assert "gap_analysis" not in _types(events)
        assert "error" not in _types(events)
        analyzer_steps = [e.message for e in events if e.type == "step" and e.agent == "GapAnalyzer"]
        assert any("skipped" in m for m in analyzer_steps)
        assert events[-1].type == "complete"

    def test_sanitizer_failure_is_fatal(self):
        transport = FakeTransport(
            [detector_reply(), gap_reply(covered=["base case"]), AgentInvocationError("m", "quota exceeded")],
            chunks=["Draft."],
        )
        run = _orchestrator(transport).start(WITH_TRANSCRIPT)
        events = list(run)

        assert events[-1].type == "error"
        assert events[-1].message == "quota exceeded"
        assert run.state == PipelineState.ERROR

    def test_gap_analysis_cached_across_runs(self):
        replies = [detector_reply(), gap_reply(covered=["base case"]), "S1.", detector_reply(), "S2."]
        transport = FakeTransport(replies, chunks=["Draft."])
        orchestrator = _orchestrator(transport, review_max_rounds=0)

        first = list(orchestrator.generate(WITH_TRANSCRIPT))
        second = list(orchestrator.generate(WITH_TRANSCRIPT))

        assert first[-1].content == "S1."
        assert second[-1].content == "S2."
        assert "gap_analysis" in _types(second)
        assert transport.replies == []

    def test_cached_gap_analysis_not_shared_between_runs(self):
        replies = [detector_reply(), gap_reply(covered=["base case"]), "S1.", detector_reply(), "S2."]
        orchestrator = _orchestrator(FakeTransport(replies, chunks=["Draft."]), review_max_rounds=0)

        first = orchestrator.start(WITH_TRANSCRIPT)
        list(first)
        second = orchestrator.start(WITH_TRANSCRIPT)
        list(second)

        assert second.gap_analysis == first.gap_analysis
        assert second.gap_analysis is not first.gap_analysis
        second.gap_analysis.covered.append("call stack")
        assert first.gap_analysis.covered == ["base case"]


class TestReviewLoop:
    def test_loop_capped(self):
        transport = FakeTransport(
            [
                detector_reply(),
                review_reply(5),
                PATCH.format(old="one", new="two"),
                review_reply(6),
                PATCH.format(old="two", new="three"),
            ],
            chunks=["one"],
        )
        events = list(_orchestrator(transport, review_max_rounds=2).generate(LECTURE))

        steps = [e.agent for e in events if e.type == "step"]
        assert steps.count("QualityReviewer") == 2
        assert steps.count("PolishRefiner") == 2
        assert [e.content for e in events if e.type == "replace"] == ["two", "three"]
        assert events[-1].content == "three"
        assert transport.replies == []

    def test_exits_early_when_polished(self):
        transport = FakeTransport(
            [detector_reply(), review_reply(7), PATCH.format(old="one", new="two"), review_reply(9)],
            chunks=["one"],
        )
        events = list(_orchestrator(transport, review_max_rounds=3).generate(LECTURE))
        steps = [e.agent for e in events if e.type == "step"]
        assert steps.count("QualityReviewer") == 2
        assert steps.count("PolishRefiner") == 1

    def test_unmatched_patch_keeps_content(self):
        transport = FakeTransport(
            [detector_reply(), review_reply(5), PATCH.format(old="missing", new="x")],
            chunks=["one"],
        )
        events = list(_orchestrator(transport, review_max_rounds=1).generate(LECTURE))
        assert "replace" not in _types(events)
        assert events[-1].content == "one"

    def test_non_standard_review_json_uses_fallback_score(self):
        transport = FakeTransport(
            [detector_reply(), '{"score": NaN, "issues": []}', PATCH.format(old="one", new="two")],
            chunks=["one"],
        )
        events = list(_orchestrator(transport, review_max_rounds=1).generate(LECTURE))

        assert "error" not in _types(events)
        refiner_steps = [e.message for e in events if e.type == "step" and e.agent == "PolishRefiner"]
        assert refiner_steps == ["Refining content (score 7/10)..."]
        assert events[-1].content == "two"

    def test_zero_rounds_skips_review(self):
        transport = FakeTransport([detector_reply()], chunks=["x"])
        events = list(_orchestrator(transport, review_max_rounds=0).generate(LECTURE))
        assert _types(events) == ["step", "step", "chunk", "complete"]


class TestAssignmentMode:
    def test_formatted_before_complete(self):
        draft = json.dumps([MCSC_ITEM])
        request = GenerationRequest(
            topic="Recursion", mode=ContentMode.ASSIGNMENT,
            assignment_counts=AssignmentCounts(mcsc=1, mcmc=0, subjective=0),
        )
        transport = FakeTransport([detector_reply()], chunks=[draft])
        events = list(_orchestrator(transport, review_max_rounds=0).generate(request))

        assert _types(events)[-2:] == ["formatted", "complete"]
        formatted = json.loads(events[-2].content)
        assert formatted[0]["questionType"] == "mcsc"
        assert formatted[0]["mcscAnswer"] == 2
        assert transport.replies == []

    def test_no_questions_is_fatal(self):
        request = GenerationRequest(topic="Recursion", mode=ContentMode.ASSIGNMENT)
        transport = FakeTransport([detector_reply(), "still not json"], chunks=["Prose questions."])
        events = list(_orchestrator(transport, review_max_rounds=0).generate(request))
        assert events[-1].type == "error"
        assert "no valid assignment questions" in events[-1].message


class TestPostProcessing:
    def test_strip_ai_patterns_replace(self):
        transport = FakeTransport([detector_reply()], chunks=["It is important to note that recursion works."])
        events = list(_orchestrator(transport, review_max_rounds=0, strip_ai_patterns=True).generate(LECTURE))
        assert _types(events)[-2:] == ["replace", "complete"]
        assert events[-1].content == "recursion works."

    def test_strip_off_by_default(self):
        transport = FakeTransport([detector_reply()], chunks=["It is important to note that recursion works."])
        events = list(_orchestrator(transport, review_max_rounds=0).generate(LECTURE))
        assert "replace" not in _types(events)


class TestFailures:
    def test_stream_failure_emits_single_error(self):
        transport = FakeTransport([detector_reply()], chunks=["partial"])
        transport.stream_error = AgentInvocationError("m", "connection reset")
        run = _orchestrator(transport).start(LECTURE)
        events = list(run)

        terminal = [e for e in events if e.type in TERMINAL_EVENT_TYPES]
        assert len(terminal) == 1
        assert terminal[0].type == "error"
        assert terminal[0].message == "connection reset"
        assert run.state == PipelineState.ERROR

    def test_empty_draft_is_error(self):
        transport = FakeTransport([detector_reply()], chunks=[])
        events = list(_orchestrator(transport).generate(LECTURE))
        assert events[-1].type == "error"

    @pytest.mark.parametrize("review_rounds", [0, 1, 2])
    def test_exactly_one_terminal_event(self, review_rounds):
        replies = [detector_reply()] + [review_reply(9)] * min(review_rounds, 1)
        transport = FakeTransport(replies, chunks=["a", "b"])
        events = list(_orchestrator(transport, review_max_rounds=review_rounds).generate(LECTURE))
        assert sum(e.type in TERMINAL_EVENT_TYPES for e in events) == 1
        assert events[-1].type in TERMINAL_EVENT_TYPES


class TestCancellation:
    def test_cancel_mid_stream(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["a", "b", "c"])
        run = _orchestrator(transport).start(LECTURE)

        seen = []
        for event in run:
            seen.append(event)
            if event.type == "chunk":
                run.cancel()

        assert _types(seen) == ["step", "step", "chunk"]
        assert run.state == PipelineState.ABORTED
        assert len(transport.replies) == 1

    def test_cancel_before_start(self):
        token = CancellationToken()
        token.cancel()
        transport = FakeTransport([detector_reply()], chunks=["a"])
        events = list(_orchestrator(transport).generate(LECTURE, cancel_token=token))
        assert events == []
        assert transport.invocations == []

    def test_cancel_between_phases(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["a"])
        run = _orchestrator(transport).start(LECTURE)
        seen = []
        for event in run:
            seen.append(event)
            if event.type == "step" and event.agent == "Drafter":
                run.cancel()
        assert "chunk" not in _types(seen)
        assert not any(e.type in TERMINAL_EVENT_TYPES for e in seen)


class TestRunCost:
    def test_monotonic_and_reported(self):
        transport = FakeTransport(
            [detector_reply(), review_reply(5), PATCH.format(old="a", new="b"), review_reply(9)],
            chunks=["a"],
        )
        run = _orchestrator(transport).start(LECTURE)
        events = list(run)

        history = run.cost.history
        assert len(history) == 5
        assert all(later >= earlier for earlier, later in zip(history, history[1:]))
        assert events[-1].cost == round(history[-1], 6)

    def test_negative_increment_rejected(self):
        with pytest.raises(ValueError):
            RunCost().add(-1.0)

    def test_metrics_recorded_per_agent(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["a"])
        orchestrator = _orchestrator(transport)
        list(orchestrator.generate(LECTURE))
        summary = orchestrator.context.metrics.summary_by_agent()
        assert set(summary) == {"CourseDetector", "Drafter", "QualityReviewer"}
        assert summary["Drafter"].output_tokens == 1


class TestGenerationRun:
    def test_finished_tracks_terminal_state(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["a"])
        run = _orchestrator(transport).start(LECTURE)
        assert not run.finished
        events = iter(run)
        next(events)
        assert not run.finished
        list(events)
        assert run.finished

    def test_finished_after_cancel(self):
        transport = FakeTransport([detector_reply()], chunks=["a", "b"])
        run = _orchestrator(transport).start(LECTURE)
        for event in run:
            if event.type == "chunk":
                run.cancel()
        assert run.state == PipelineState.ABORTED
        assert run.finished

    def test_iterable_once(self):
        transport = FakeTransport([detector_reply(), review_reply(9)], chunks=["a"])
        run = _orchestrator(transport).start(LECTURE)
        list(run)
        with pytest.raises(RunConsumedError):
            iter(run)

    def test_independent_runs(self):
        transport = FakeTransport([detector_reply(), review_reply(9)] * 2, chunks=["a"])
        orchestrator = _orchestrator(transport)
        first, second = orchestrator.start(LECTURE), orchestrator.start(LECTURE)
        list(first)
        list(second)
        assert first.cost is not second.cost
        assert first.cost.total == pytest.approx(second.cost.total)


class TestAgentSubstitution:
    def test_fake_drafter(self, config):
        class StubDrafter:
            identity = "StubDrafter"
            target_model = "stub-model"

            def build_prompt(self, request, course_context=None, gap=None):
                return AgentPrompt(system="s", user=request.topic)

            def invoke_streaming(self, prompt, cancel_token=None):
                yield f"About {prompt.user}"

        transport = FakeTransport([detector_reply()])
        agents = AgentSet.from_config(config, transport)
        agents.drafter = StubDrafter()
        orchestrator = Orchestrator(ProjectConfig(review_max_rounds=0), agents=agents)

        events = list(orchestrator.generate(LECTURE))
        assert events[-1].content == "About Recursion"
        assert "StubDrafter" in [e.agent for e in events if e.type == "step"]
