"""CourseDetector agent — classifies the request into a teaching domain."""

from __future__ import annotations

import logging
import math
from typing import Any

from pydantic import ValidationError

from ..config import model_for_role
from ..errors import AgentInvocationError
from ..models import CourseCharacteristics, CourseContext, GenerationRequest, ProjectConfig
from ..tools.json_repair import parse_llm_json
from ..transport import CancellationToken, LLMTransport
from .base import AgentOutcome, AgentPrompt, invoke_text

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are an educational content domain specialist.

Given a content request (topic, subtopics and optionally a transcript
excerpt), determine which teaching domain it belongs to: software
engineering, cybersecurity, product management, data science, AI/ML,
hardware, or any other technical or non-technical field.

Your analysis lets the writing and review agents adapt examples,
vocabulary and quality criteria to that domain.

Return ONLY valid JSON. No markdown fences or explanations.
"""

USER_TEMPLATE = """\
Analyze this educational content request and determine its domain context.

TOPIC: {topic}
SUBTOPICS: {subtopics}
{transcript_block}
Return a JSON object:
{{
  "domain": "short domain id, e.g. software-engineering",
  "confidence": 0.0,
  "characteristics": {{
    "exampleTypes": ["3-5 example types that work in this domain"],
    "formats": ["preferred formats: code blocks, mermaid diagrams, tables, latex math"],
    "vocabulary": ["5-10 domain terms to use naturally"],
    "styleHints": ["2-4 writing style guidelines"],
    "relatableExamples": ["3-5 real-world scenarios students relate to"]
  }},
  "contentGuidelines": "3-5 sentences on how to teach this material well. Do not name the domain.",
  "qualityCriteria": "What a reviewer should check: must-haves and common pitfalls."
}}
"""


def _str_list(value: Any, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    items = [str(v) for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    return items or list(default)


def context_from_response(raw: str) -> CourseContext:
    """Build a CourseContext from model output, defaulting field by field."""
    data = parse_llm_json(raw, {})
    if not isinstance(data, dict) or not data:
        return CourseContext.generic()

    chars = data.get("characteristics")
    chars = chars if isinstance(chars, dict) else {}
    confidence = data.get("confidence")
    if (
        isinstance(confidence, (int, float))
        and not isinstance(confidence, bool)
        and math.isfinite(confidence)
    ):
        confidence = min(max(float(confidence), 0.0), 1.0)
    else:
        confidence = 0.5

    return CourseContext(
        domain=str(data.get("domain") or "general"),
        confidence=confidence,
        characteristics=CourseCharacteristics(
            example_types=_str_list(chars.get("exampleTypes"), ["practical examples"]),
            formats=_str_list(chars.get("formats"), ["markdown"]),
            vocabulary=_str_list(chars.get("vocabulary"), []),
            style_hints=_str_list(chars.get("styleHints"), ["clear and accessible"]),
            relatable_examples=_str_list(chars.get("relatableExamples"), []),
        ),
        content_guidelines=str(
            data.get("contentGuidelines")
            or "Create clear, engaging educational content with practical examples."
        ),
        quality_criteria=str(
            data.get("qualityCriteria")
            or "Content should be accurate, well-structured, and engaging."
        ),
    )


class CourseDetector:
    """Context-Detector stage. Never raises: failures yield the generic context."""

    identity = "CourseDetector"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("detector", config)

    def build_prompt(self, request: GenerationRequest) -> AgentPrompt:
        transcript_block = ""
        if request.has_transcript:
            excerpt = request.transcript[: self.config.detector_transcript_chars]
            transcript_block = f"\nTRANSCRIPT EXCERPT (additional context):\n{excerpt}\n"
        return AgentPrompt(
            system=SYSTEM_PROMPT,
            user=USER_TEMPLATE.format(
                topic=request.topic,
                subtopics=request.subtopics or "(none given)",
                transcript_block=transcript_block,
            ),
        )

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(
            self.transport, prompt, self.target_model,
            temperature=0.3, cancel_token=cancel_token,
        )

    def detect(
        self, request: GenerationRequest, cancel_token: CancellationToken | None = None,
    ) -> AgentOutcome[CourseContext]:
        prompt = self.build_prompt(request)
        try:
            raw = self.invoke(prompt, cancel_token)
        except AgentInvocationError as e:
            logger.warning("Course detection failed, using generic context: %s", e)
            return AgentOutcome(CourseContext.generic(), prompt, "", failed=True)
        try:
            context = context_from_response(raw)
        except (ValueError, ValidationError) as e:
            logger.warning("Course detection response rejected, using generic context: %s", e)
            return AgentOutcome(CourseContext.generic(), prompt, raw, failed=True)
        return AgentOutcome(context, prompt, raw)
