"""Drafter agent — streams the first draft for the requested content mode."""

from __future__ import annotations

from collections.abc import Iterator

from ..config import model_for_role
from ..models import (
    AssignmentCounts,
    ContentMode,
    CourseContext,
    GapAnalysisResult,
    GenerationRequest,
    ProjectConfig,
)
from ..transport import CancellationToken, LLMTransport
from .base import AgentPrompt, invoke_text, truncate

SYSTEM_PROMPT = """\
You are an expert educational content writer who teaches like an experienced
practitioner explaining things to a motivated student.

Guidelines:
- Write directly to the learner ("you"), in clear and concrete prose.
- Explain the "why" behind every concept before the "how".
- Use realistic examples, and code blocks, tables or mermaid diagrams where
  they make an idea easier to grasp.
- Never mention transcripts, lectures, instructors, or how this text was made.
- Do not open with filler ("In this section we will...") or close with
  summaries of what you just did.

Return ONLY the markdown content. No meta-commentary.
"""

_MODE_GUIDANCE = {
    ContentMode.LECTURE: (
        "\nCONTENT TYPE: lecture notes\n"
        "Structure:\n"
        "## What You'll Learn\n"
        "  Short bullet list of concrete outcomes.\n"
        "## <one section per subtopic>\n"
        "  Detailed explanation: intuition first, then mechanics, then a worked example.\n"
        "  Call out common mistakes and misconceptions.\n"
        "## Key Takeaways\n"
        "  3-6 bullets a student could use to revise.\n"
    ),
    ContentMode.PRE_READ: (
        "\nCONTENT TYPE: pre-read\n"
        "The student has not attended the session yet. Build curiosity and\n"
        "vocabulary, not mastery.\n"
        "Structure:\n"
        "## What You'll Learn\n"
        "## Understanding <each subtopic>\n"
        "  Plain-language intuition, one relatable analogy, one small example.\n"
        "## Practice Exercises\n"
        "  2-4 light warm-up questions that prepare for the session.\n"
    ),
    ContentMode.ASSIGNMENT: (
        "\nCONTENT TYPE: assignment\n"
        "Write assessment questions that test understanding and application,\n"
        "not recall of wording.\n"
        "Rules:\n"
        "- mcsc: exactly one correct option out of four.\n"
        "- mcmc: two or more correct options out of four.\n"
        "- subjective: open question with a model answer.\n"
        "- Distractors must be plausible and reflect real misconceptions.\n"
        "- Every question has a difficulty (Easy, Medium, Hard) and an explanation.\n"
        "Return a ```json fenced array of objects:\n"
        "{\n"
        '  "questionType": "mcsc" | "mcmc" | "subjective",\n'
        '  "contentType": "markdown",\n'
        '  "contentBody": "question text",\n'
        '  "options": {"1": "...", "2": "...", "3": "...", "4": "..."},\n'
        '  "mcscAnswer": 2,\n'
        '  "mcmcAnswer": "1, 3",\n'
        '  "subjectiveAnswer": "model answer",\n'
        '  "difficultyLevel": "Medium",\n'
        '  "answerExplanation": "why the answer is right and the others are not"\n'
        "}\n"
        "Include only the answer field that matches questionType. Subjective\n"
        "questions use empty options.\n"
    ),
}


def _context_block(ctx: CourseContext) -> str:
    chars = ctx.characteristics
    lines = [f"\nDOMAIN GUIDANCE:\n{ctx.content_guidelines}"]
    if chars.example_types:
        lines.append(f"- Example types that work well: {', '.join(chars.example_types)}")
    if chars.formats:
        lines.append(f"- Preferred formats: {', '.join(chars.formats)}")
    if chars.vocabulary:
        lines.append(f"- Use this vocabulary naturally: {', '.join(chars.vocabulary)}")
    if chars.style_hints:
        lines.append(f"- Style: {', '.join(chars.style_hints)}")
    if chars.relatable_examples:
        lines.append(f"- Relatable scenarios: {', '.join(chars.relatable_examples)}")
    return "\n".join(lines) + "\n"


def _gap_block(gap: GapAnalysisResult) -> str:
    lines = ["\nTRANSCRIPT COVERAGE:"]
    if gap.covered:
        lines.append(f"- Covered in depth (follow the transcript closely): {', '.join(gap.covered)}")
    if gap.partially_covered:
        lines.append(
            f"- Partially covered (expand carefully, stay consistent): {', '.join(gap.partially_covered)}"
        )
    if gap.not_covered:
        lines.append(f"- Not covered (keep brief and conservative): {', '.join(gap.not_covered)}")
    return "\n".join(lines) + "\n"


def _counts_line(counts: AssignmentCounts) -> str:
    return (
        f"\nQUESTION COUNTS: exactly {counts.mcsc} mcsc, {counts.mcmc} mcmc and "
        f"{counts.subjective} subjective ({counts.total} total).\n"
    )


class Drafter:
    """Creator stage. Output is streamed chunk by chunk."""

    identity = "Drafter"

    def __init__(self, transport: LLMTransport, config: ProjectConfig, model: str | None = None) -> None:
        self.transport = transport
        self.config = config
        self.target_model = model or model_for_role("drafter", config)

    def build_prompt(
        self,
        request: GenerationRequest,
        course_context: CourseContext | None = None,
        gap: GapAnalysisResult | None = None,
    ) -> AgentPrompt:
        system = SYSTEM_PROMPT + _MODE_GUIDANCE[request.mode]
        if course_context is not None:
            system += _context_block(course_context)

        parts = [f"TOPIC: {request.topic}"]
        if request.subtopic_list:
            parts.append("SUBTOPICS:\n" + "\n".join(f"- {s}" for s in request.subtopic_list))
        if request.mode == ContentMode.ASSIGNMENT:
            parts.append(_counts_line(request.assignment_counts or AssignmentCounts()).strip())
        if gap is not None and not gap.is_empty:
            parts.append(_gap_block(gap).strip())
        if request.has_transcript:
            excerpt = truncate(request.transcript, self.config.drafter_transcript_chars)
            parts.append(
                "SOURCE TRANSCRIPT (use as the primary source of facts and examples):\n" + excerpt
            )
        if request.additional_instructions.strip():
            parts.append(f"ADDITIONAL INSTRUCTIONS:\n{request.additional_instructions.strip()}")
        return AgentPrompt(system=system, user="\n\n".join(parts))

    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str:
        return invoke_text(self.transport, prompt, self.target_model, cancel_token=cancel_token)

    def invoke_streaming(
        self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        return self.transport.stream(
            prompt.system,
            [{"role": "user", "content": prompt.user}],
            self.target_model,
            cancel_token=cancel_token,
        )

    def draft(
        self,
        request: GenerationRequest,
        course_context: CourseContext | None = None,
        gap: GapAnalysisResult | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        yield from self.invoke_streaming(self.build_prompt(request, course_context, gap), cancel_token)
