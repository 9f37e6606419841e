"""GapAnalyzer agent — checks which subtopics a transcript actually covers."""

from __future__ import annotations

from typing import Any

from ..config import model_for_role
from ..models import GapAnalysisResult, ProjectConfig
from ..tools.json_repair import parse_llm_json
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text

SYSTEM_PROMPT = """\
You are a topic extraction specialist.

Given a numbered list of subtopics and a lecture transcript, decide for each
subtopic whether the transcript covers it fully, partially, or not at all.
Also list the main topics the transcript itself spends time on.

Return a JSON object:
{
  "covered": ["exact subtopic string"],
  "partiallyCovered": ["exact subtopic string"],
  "notCovered": ["exact subtopic string"],
  "transcriptTopics": ["topic discussed in the transcript"]
}

Every subtopic must appear in exactly one of the three coverage lists, spelled
exactly as given. Return ONLY valid JSON. No markdown fences or explanations.
"""


def split_subtopics(subtopics: str) -> list[str]:
    return [s.strip() for s in subtopics.split(",") if s.strip()]


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def gap_result_from_response(raw: str) -> GapAnalysisResult:
    """Parse analyzer output; anything unparseable yields empty lists."""
    data = parse_llm_json(raw, {})
    if not isinstance(data, dict):
        data = {}
    return GapAnalysisResult(
        covered=_strings(data.get("covered")),
        partially_covered=_strings(data.get("partiallyCovered")),
        not_covered=_strings(data.get("notCovered")),
        transcript_topics=_strings(data.get("transcriptTopics")),
    )


class GapAnalyzer:
    """Coverage-Analyzer stage. Transport errors propagate; parse errors do not."""

    identity = "GapAnalyzer"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("analyzer", config)

    def build_prompt(self, subtopics: str, transcript: str) -> AgentPrompt:
        numbered = "\n".join(f"{i}. {s}" for i, s in enumerate(split_subtopics(subtopics), 1))
        user = (
            f"Subtopics to check:\n{numbered}\n\n"
            f"Transcript:\n{transcript}\n\n"
            "Analyze carefully whether each subtopic is fully covered, partially covered, "
            "or not mentioned at all in the transcript."
        )
        return AgentPrompt(system=SYSTEM_PROMPT, user=user)

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.0, cancel_token=cancel_token,
        )

    def analyze(
        self, subtopics: str, transcript: str, cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[GapAnalysisResult]:
        prompt = self.build_prompt(subtopics, transcript)
        raw = self.invoke(prompt, cancel_token)
        return AgentOutcome(gap_result_from_response(raw), prompt, raw)
