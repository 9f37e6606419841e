"""AssignmentFormatter agent — turns assignment drafts into validated LMS questions."""

from __future__ import annotations

import json
import logging

from ..config import model_for_role
from ..models import AssignmentCounts, AssignmentItem, ProjectConfig
from ..tools.assignment_validator import (
    NormalizationReport,
    normalize_assignment_items,
    validate_question_counts,
)
from ..tools.json_repair import parse_llm_json
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You convert assessment questions into a strict JSON array for an LMS import.

Each element:
{
  "questionType": "mcsc" | "mcmc" | "subjective",
  "contentType": "markdown",
  "contentBody": "question text (markdown allowed)",
  "options": {"1": "...", "2": "...", "3": "...", "4": "..."},
  "mcscAnswer": 2,
  "mcmcAnswer": "1, 3",
  "subjectiveAnswer": "model answer",
  "difficultyLevel": "Easy" | "Medium" | "Hard",
  "answerExplanation": "why the answer is correct"
}

Rules:
- Set ONLY the answer field matching questionType; omit the other two.
- mcsc answers are a single option number 1-4.
- mcmc answers list two or more option numbers, comma separated.
- Subjective questions use empty option strings.
- Keep question wording and meaning; fix only structure.

Return ONLY the JSON array. No markdown fences or explanations.
"""


def items_to_json(items: list[AssignmentItem]) -> str:
    return json.dumps([item.to_export_dict() for item in items], indent=2, ensure_ascii=False)


def try_fast_path(content: str) -> NormalizationReport:
    """Normalize *content* locally, without a model call."""
    value = parse_llm_json(content, None)
    if value is None:
        return NormalizationReport(errors=["root: content is not JSON"])
    return normalize_assignment_items(value)


class AssignmentFormatter:
    """Formatter stage for assignment mode."""

    identity = "AssignmentFormatter"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("formatter", config)

    def build_prompt(self, content: str, counts: AssignmentCounts | None = None) -> AgentPrompt:
        user = f"QUESTIONS TO CONVERT:\n{content}"
        if counts is not None:
            user += (
                f"\n\nExpected: {counts.mcsc} mcsc, {counts.mcmc} mcmc, "
                f"{counts.subjective} subjective."
            )
        return AgentPrompt(system=SYSTEM_PROMPT, user=user)

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.0, cancel_token=cancel_token,
        )

    def format(
        self,
        content: str,
        counts: AssignmentCounts | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[list[AssignmentItem]]:
        """Return validated items; skips the model when *content* already normalizes."""
        local = try_fast_path(content)
        if local.is_valid:
            logger.info("Assignment content already structured, skipping formatter call")
            self._check_counts(local.items, counts)
            return AgentOutcome(local.items, None)

        prompt = self.build_prompt(content, counts)
        raw = self.invoke(prompt, cancel_token)
        report = normalize_assignment_items(parse_llm_json(raw, []))
        for error in report.errors:
            logger.warning("Dropping malformed question %s", error)

        items = report.items
        if not items and local.items:
            logger.warning("Formatter produced no valid questions, keeping %d parsed locally", len(local.items))
            items = local.items
        self._check_counts(items, counts)
        return AgentOutcome(items, prompt, raw, failed=not items)

    @staticmethod
    def _check_counts(items: list[AssignmentItem], counts: AssignmentCounts | None) -> None:
        if counts is None:
            return
        check = validate_question_counts(items, counts)
        if not check.matches:
            logger.warning("Question counts differ from request: %s", check.message)
