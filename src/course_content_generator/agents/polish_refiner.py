"""PolishRefiner agent — applies targeted search/replace edits from review feedback."""

from __future__ import annotations

import logging

from ..config import model_for_role
from ..models import PatchResult, ProjectConfig, ReviewResult
from ..tools.patcher import apply_patch, parse_patch_blocks
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a precise editor of educational content.

Fix ONLY the issues listed in the feedback. Do not rewrite passages that are
not mentioned. Express every edit as a search/replace block:

<<<<<<< SEARCH
exact text copied from the content, including whitespace
=======
replacement text
>>>>>>>

Rules:
- The SEARCH text must match the content character for character and be
  long enough to be unique (a full sentence or line).
- Emit one block per edit; several blocks are fine.
- To delete text, leave the replacement empty.
- Output ONLY the blocks. No commentary before or after.
"""


def _feedback_block(review: ReviewResult) -> str:
    lines = [f"SCORE: {review.score:g}/10", f"SUMMARY: {review.feedback}"]
    if review.detailed_feedback:
        lines.append("ISSUES:")
        lines.extend(f"- {item}" for item in review.detailed_feedback)
    return "\n".join(lines)


class PolishRefiner:
    """Refiner stage. Unmatched blocks are skipped, never fatal."""

    identity = "PolishRefiner"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("refiner", config)

    def build_prompt(self, content: str, review: ReviewResult) -> AgentPrompt:
        user = f"FEEDBACK:\n{_feedback_block(review)}\n\nCONTENT:\n{content}"
        return AgentPrompt(system=SYSTEM_PROMPT, user=user)

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.2, cancel_token=cancel_token,
        )

    def refine(
        self, content: str, review: ReviewResult, cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[PatchResult]:
        prompt = self.build_prompt(content, review)
        raw = self.invoke(prompt, cancel_token)
        blocks = parse_patch_blocks(raw)
        if not blocks:
            logger.warning("Refiner returned no search/replace blocks, content unchanged")
            return AgentOutcome(PatchResult(text=content), prompt, raw)
        result = apply_patch(content, blocks)
        logger.info("Refiner applied %d/%d patch blocks", len(result.applied), len(blocks))
        return AgentOutcome(result, prompt, raw)
