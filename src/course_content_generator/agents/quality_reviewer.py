"""QualityReviewer agent — scores content and says what to fix."""

from __future__ import annotations

import logging
import math
import re
from typing import Any

from pydantic import ValidationError

from ..config import model_for_role
from ..models import ContentMode, CourseContext, ProjectConfig, ReviewResult
from ..tools.json_repair import parse_llm_json
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text, truncate

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a demanding reviewer of educational content.

Score the content from 0 to 10:
- 9-10: publishable as is.
- 7-8: solid, but specific passages need work.
- 5-6: structural or clarity problems.
- 0-4: inaccurate, confusing or incomplete.

Check for:
- Factual accuracy and claims that look invented (hallucinations).
- Logical flow and whether each concept is explained before it is used.
- Concrete, relevant examples.
- AI-sounding filler, meta-commentary, and references to "the transcript"
  or "the lecture".
- Formatting: headings, code blocks, lists and tables used sensibly.

Return ONLY JSON:
{
  "score": 0,
  "has_hallucinations": false,
  "summary": "one-paragraph overall assessment",
  "issues": [
    {"category": "accuracy|clarity|structure|examples|style|formatting",
     "issue": "what is wrong, quoting the passage",
     "fix": "specific instruction for fixing it"}
  ]
}
"""

FALLBACK_SCORE = 7.0
_FALLBACK_FEEDBACK = "Review output could not be parsed; a general polish pass is recommended."

_SCORE_RE = re.compile(r"score\s*[:=\-]?\s*(\d+(?:\.\d+)?)\s*(?:/\s*10)?", re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.+)$")


def _format_issue(issue: Any) -> str | None:
    if isinstance(issue, str):
        return issue.strip() or None
    if not isinstance(issue, dict):
        return None
    text = str(issue.get("issue") or "").strip()
    if not text:
        return None
    category = str(issue.get("category") or "").strip()
    fix = str(issue.get("fix") or "").strip()
    line = f"[{category}] {text}" if category else text
    return f"{line} Fix: {fix}" if fix else line


def _clamp_score(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score):
        return None
    return min(max(score, 0.0), 10.0)


def _from_json(data: Any, threshold: float) -> ReviewResult | None:
    if not isinstance(data, dict):
        return None
    score = _clamp_score(data.get("score"))
    if score is None:
        return None
    issues = data.get("issues") or data.get("main_issues") or []
    if not isinstance(issues, list):
        issues = [issues]
    detailed = [line for line in (_format_issue(i) for i in issues) if line]
    hallucinations = bool(data.get("has_hallucinations", False))
    if hallucinations:
        # Invented claims keep the score under the polish bar.
        score = min(score, max(threshold - 1.0, 0.0))
        detailed.insert(0, "[accuracy] Content contains claims that look invented. Fix: remove or correct them.")
    summary = str(data.get("summary") or data.get("feedback") or "").strip()
    return ReviewResult(
        score=score,
        needs_polish=score < threshold,
        feedback=summary or ("Meets the quality bar." if score >= threshold else "Needs polish."),
        detailed_feedback=detailed,
    )


def _from_lines(raw: str, threshold: float) -> ReviewResult | None:
    """Recover a score and bullet list from prose-style review output."""
    m = _SCORE_RE.search(raw)
    if not m:
        return None
    score = _clamp_score(m.group(1))
    if score is None:
        return None
    bullets = [b.group(1).strip() for b in map(_BULLET_RE.match, raw.splitlines()) if b]
    return ReviewResult(
        score=score,
        needs_polish=score < threshold,
        feedback=raw.strip()[:500],
        detailed_feedback=bullets,
    )


def validate_review(raw: str, threshold: float = 9.0) -> tuple[ReviewResult | None, str | None]:
    """Staged parse of reviewer output into a ReviewResult."""
    data = parse_llm_json(raw, None)
    try:
        result = _from_json(data, threshold)
    except ValidationError as e:
        logger.debug("Review JSON did not validate: %s", e)
        result = None
    if result is not None:
        return result, None

    try:
        result = _from_lines(raw, threshold)
    except ValidationError as e:
        logger.debug("Review lines did not validate: %s", e)
        result = None
    if result is not None:
        return result, None

    return None, "no JSON object with a score and no 'Score: N' line"


def fallback_review() -> ReviewResult:
    return ReviewResult(
        score=FALLBACK_SCORE,
        needs_polish=True,
        feedback=_FALLBACK_FEEDBACK,
        detailed_feedback=[],
    )


class QualityReviewer:
    """Reviewer stage. Unparseable output yields a middling score that asks for polish."""

    identity = "QualityReviewer"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("reviewer", config)

    def build_prompt(
        self,
        content: str,
        mode: ContentMode = ContentMode.LECTURE,
        course_context: CourseContext | None = None,
        transcript: str = "",
    ) -> AgentPrompt:
        system = SYSTEM_PROMPT
        if course_context is not None and course_context.quality_criteria:
            system += f"\nDOMAIN-SPECIFIC CRITERIA:\n{course_context.quality_criteria}\n"
        user = (
            f"CONTENT TYPE: {mode.value}\n\n"
            f"CONTENT TO REVIEW:\n{truncate(content, self.config.reviewer_content_chars)}"
        )
        if transcript.strip():
            # Claims absent from the source count as hallucinations.
            excerpt = truncate(transcript, self.config.drafter_transcript_chars)
            user += f"\n\nSOURCE TRANSCRIPT (ground truth for accuracy checks):\n{excerpt}"
        return AgentPrompt(system=system, user=user)

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.0, cancel_token=cancel_token,
        )

    def review(
        self,
        content: str,
        mode: ContentMode = ContentMode.LECTURE,
        course_context: CourseContext | None = None,
        transcript: str = "",
        cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[ReviewResult]:
        prompt = self.build_prompt(content, mode, course_context, transcript)
        raw = self.invoke(prompt, cancel_token)
        result, error = validate_review(raw, self.config.polish_threshold)
        if result is None:
            logger.warning("Could not parse review (%s), using fallback score %.0f", error, FALLBACK_SCORE)
            return AgentOutcome(fallback_review(), prompt, raw, failed=True)
        return AgentOutcome(result, prompt, raw)
