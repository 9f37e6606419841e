"""FactSanitizer agent — removes draft claims the transcript does not support."""

from __future__ import annotations

import logging

from ..config import model_for_role
from ..models import ProjectConfig
from ..tools.json_repair import strip_fences
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a strict fact-checker for educational content.

You receive a draft and the transcript it was written from. Rewrite the draft
so that every factual claim (numbers, names, definitions, dates, specific
technical statements) is supported by the transcript.

Rules:
- Remove or soften claims the transcript contradicts or does not support.
- Keep structure, headings, formatting, examples and tone unchanged wherever
  the content is already supported.
- General explanatory prose that introduces no new facts may stay.
- Do not add new material.

Return ONLY the corrected content in full. No notes about what changed.
"""


class FactSanitizer:
    """Sanitizer stage. Invocation errors propagate to the caller."""

    identity = "FactSanitizer"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("sanitizer", config)

    def build_prompt(self, draft: str, transcript: str) -> AgentPrompt:
        excerpt = transcript[: self.config.sanitizer_transcript_chars]
        user = f"TRANSCRIPT:\n{excerpt}\n\nDRAFT TO VERIFY:\n{draft}"
        return AgentPrompt(system=SYSTEM_PROMPT, user=user)

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.0, cancel_token=cancel_token,
        )

    def sanitize(
        self, draft: str, transcript: str, cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[str]:
        prompt = self.build_prompt(draft, transcript)
        raw = self.invoke(prompt, cancel_token)
        cleaned = raw.strip()
        # Models sometimes wrap the whole document in a markdown fence.
        if cleaned.startswith("```markdown") or cleaned.startswith("```md"):
            cleaned = strip_fences(cleaned).strip()
        if not cleaned:
            logger.warning("Sanitizer returned empty output, keeping the draft")
            return AgentOutcome(draft, prompt, raw)
        return AgentOutcome(cleaned, prompt, raw)
