"""Pydantic models for the course content generation pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ContentMode(str, Enum):
    LECTURE = "lecture"
    PRE_READ = "pre-read"
    ASSIGNMENT = "assignment"


class QuestionType(str, Enum):
    MCSC = "mcsc"
    MCMC = "mcmc"
    SUBJECTIVE = "subjective"


class DifficultyLevel(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class PipelineState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    ANALYZING = "analyzing"
    DRAFTING = "drafting"
    SANITIZING = "sanitizing"
    REVIEWING = "reviewing"
    REFINING = "refining"
    FORMATTING = "formatting"
    COMPLETE = "complete"
    MISMATCH = "mismatch"
    ABORTED = "aborted"
    ERROR = "error"


TERMINAL_STATES = frozenset({
    PipelineState.COMPLETE,
    PipelineState.MISMATCH,
    PipelineState.ABORTED,
    PipelineState.ERROR,
})


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Generation request
# ---------------------------------------------------------------------------

class AssignmentCounts(BaseModel):
    """Requested number of questions per type."""
    mcsc: int = Field(default=2, ge=0)
    mcmc: int = Field(default=2, ge=0)
    subjective: int = Field(default=1, ge=0)

    @property
    def total(self) -> int:
        return self.mcsc + self.mcmc + self.subjective


class GenerationRequest(BaseModel):
    """Inputs for one generation run. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    topic: str
    subtopics: str = Field(default="", description="Comma-delimited subtopics")
    mode: ContentMode = ContentMode.LECTURE
    transcript: str = ""
    assignment_counts: AssignmentCounts | None = None
    additional_instructions: str = ""

    @property
    def subtopic_list(self) -> list[str]:
        return [s.strip() for s in self.subtopics.split(",") if s.strip()]

    @property
    def has_transcript(self) -> bool:
        return bool(self.transcript.strip())

    def without_transcript(self) -> GenerationRequest:
        """Request to use when the caller chooses to continue without the transcript."""
        return self.model_copy(update={"transcript": ""})


# ---------------------------------------------------------------------------
# Agent outputs
# ---------------------------------------------------------------------------

class CourseCharacteristics(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    example_types: list[str] = Field(default_factory=list, alias="exampleTypes")
    formats: list[str] = Field(default_factory=list)
    vocabulary: list[str] = Field(default_factory=list)
    style_hints: list[str] = Field(default_factory=list, alias="styleHints")
    relatable_examples: list[str] = Field(default_factory=list, alias="relatableExamples")


class CourseContext(BaseModel):
    """Detected domain metadata used to tailor drafting and review."""
    model_config = ConfigDict(populate_by_name=True)

    domain: str = "general"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    characteristics: CourseCharacteristics = Field(default_factory=CourseCharacteristics)
    content_guidelines: str = Field(default="", alias="contentGuidelines")
    quality_criteria: str = Field(default="", alias="qualityCriteria")

    @classmethod
    def generic(cls) -> CourseContext:
        """Fallback context used whenever detection fails."""
        return cls(
            domain="general",
            confidence=0.3,
            characteristics=CourseCharacteristics(
                example_types=["practical examples", "real-world scenarios"],
                formats=["markdown", "code blocks where relevant"],
                vocabulary=[],
                style_hints=["clear", "accessible", "engaging"],
                relatable_examples=["everyday technology use cases"],
            ),
            content_guidelines=(
                "Create clear, well-structured educational content with practical examples "
                "that help students understand and apply the concepts."
            ),
            quality_criteria=(
                "Content should be accurate, logically structured, and free of AI-sounding "
                "patterns. Include practical examples."
            ),
        )


class GapAnalysisResult(BaseModel):
    """Coverage of the requested subtopics in the transcript."""
    model_config = ConfigDict(populate_by_name=True)

    covered: list[str] = Field(default_factory=list)
    partially_covered: list[str] = Field(default_factory=list, alias="partiallyCovered")
    not_covered: list[str] = Field(default_factory=list, alias="notCovered")
    transcript_topics: list[str] = Field(default_factory=list, alias="transcriptTopics")
    timestamp: str = Field(default_factory=_utc_now)

    @property
    def is_empty(self) -> bool:
        return not (self.covered or self.partially_covered or self.not_covered)

    @property
    def is_mismatch(self) -> bool:
        """True when subtopics were checked and none appear in the transcript."""
        return bool(self.not_covered) and not self.covered and not self.partially_covered


class ReviewResult(BaseModel):
    """Structured output of the quality reviewer."""
    model_config = ConfigDict(populate_by_name=True)

    score: float = Field(ge=0.0, le=10.0)
    needs_polish: bool = Field(alias="needsPolish")
    feedback: str = ""
    detailed_feedback: list[str] = Field(default_factory=list, alias="detailedFeedback")


# ---------------------------------------------------------------------------
# Assignment items
# ---------------------------------------------------------------------------

OPTION_KEYS = (1, 2, 3, 4)


def parse_mcmc_answer(value: Any) -> list[int]:
    """Split an mcmc answer ("1, 3" or [1, 3]) into option indices."""
    if isinstance(value, (list, tuple)):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split(",")
    return [int(p.strip()) for p in parts if p.strip()]


class AssignmentItem(BaseModel):
    """One assessment question in LMS export shape.

    Exactly one of ``mcsc_answer``, ``mcmc_answer`` and ``subjective_answer``
    is populated, matching ``question_type``.
    """
    model_config = ConfigDict(populate_by_name=True)

    question_type: QuestionType = Field(alias="questionType")
    content_type: str = Field(default="markdown", alias="contentType")
    content_body: str = Field(alias="contentBody", min_length=1)
    options: dict[int, str] = Field(default_factory=dict, validate_default=True)
    mcsc_answer: int | None = Field(default=None, alias="mcscAnswer")
    mcmc_answer: str | None = Field(default=None, alias="mcmcAnswer")
    subjective_answer: str | None = Field(default=None, alias="subjectiveAnswer")
    difficulty_level: DifficultyLevel = Field(default=DifficultyLevel.MEDIUM, alias="difficultyLevel")
    answer_explanation: str = Field(default="", alias="answerExplanation")

    @field_validator("question_type", mode="before")
    @classmethod
    def _lower_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("difficulty_level", mode="before")
    @classmethod
    def _title_difficulty(cls, v: Any) -> Any:
        return v.strip().capitalize() if isinstance(v, str) else v

    @field_validator("options", mode="before")
    @classmethod
    def _coerce_options(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, (list, tuple)):
            return {i + 1: str(opt) for i, opt in enumerate(v)}
        return v

    @field_validator("options")
    @classmethod
    def _check_option_keys(cls, v: dict[int, str]) -> dict[int, str]:
        extra = set(v) - set(OPTION_KEYS)
        if extra:
            raise ValueError(f"option keys must be 1-4, got {sorted(extra)}")
        return {k: v.get(k, "") for k in OPTION_KEYS}

    @field_validator("mcmc_answer", mode="before")
    @classmethod
    def _normalize_mcmc(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        indices = sorted(set(parse_mcmc_answer(v)))
        return ", ".join(str(i) for i in indices)

    @model_validator(mode="after")
    def _check_answer_matches_type(self) -> AssignmentItem:
        populated = [
            name for name, value in (
                ("mcsc_answer", self.mcsc_answer),
                ("mcmc_answer", self.mcmc_answer),
                ("subjective_answer", self.subjective_answer),
            )
            if value not in (None, "")
        ]
        expected = f"{self.question_type.value}_answer"
        if populated != [expected]:
            raise ValueError(
                f"{self.question_type.value} question must set only {expected}, got {populated or 'none'}"
            )

        if self.question_type == QuestionType.MCSC:
            if self.mcsc_answer not in OPTION_KEYS:
                raise ValueError(f"mcsc_answer must be 1-4, got {self.mcsc_answer}")
        elif self.question_type == QuestionType.MCMC:
            indices = parse_mcmc_answer(self.mcmc_answer)
            if len(indices) < 2:
                raise ValueError("mcmc_answer needs at least two correct options")
            if any(i not in OPTION_KEYS for i in indices):
                raise ValueError(f"mcmc_answer indices must be 1-4, got {self.mcmc_answer}")
        elif not (self.subjective_answer or "").strip():
            raise ValueError("subjective question needs subjective_answer")

        if self.question_type != QuestionType.SUBJECTIVE:
            filled = [k for k in OPTION_KEYS if self.options.get(k, "").strip()]
            if len(filled) < 2:
                raise ValueError("multiple-choice questions need at least 2 options")
        return self

    def to_export_dict(self) -> dict[str, Any]:
        """Dump with the camelCase keys used by the LMS export format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Patch engine
# ---------------------------------------------------------------------------

class PatchBlock(BaseModel):
    """One search/replace edit."""
    model_config = ConfigDict(frozen=True)

    search: str
    replace: str


class PatchResult(BaseModel):
    """Outcome of applying a patch description."""
    text: str
    applied: list[PatchBlock] = Field(default_factory=list)
    skipped: list[PatchBlock] = Field(default_factory=list)

    @property
    def fully_applied(self) -> bool:
        return not self.skipped


# ---------------------------------------------------------------------------
# Pipeline events
# ---------------------------------------------------------------------------

class StepEvent(BaseModel):
    type: Literal["step"] = "step"
    agent: str
    message: str


class ChunkEvent(BaseModel):
    type: Literal["chunk"] = "chunk"
    content: str


class GapAnalysisEvent(BaseModel):
    type: Literal["gap_analysis"] = "gap_analysis"
    content: GapAnalysisResult


class ReplaceEvent(BaseModel):
    type: Literal["replace"] = "replace"
    content: str


class FormattedEvent(BaseModel):
    type: Literal["formatted"] = "formatted"
    content: str = Field(description="JSON array of AssignmentItem")


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    content: str
    cost: float


class ErrorEvent(BaseModel):
    type: Literal["error"] = "error"
    message: str


class MismatchEvent(BaseModel):
    type: Literal["mismatch"] = "mismatch"
    content: GapAnalysisResult
    options: list[str] = Field(
        default_factory=lambda: ["continue_without_transcript", "revise_inputs"]
    )


PipelineEvent = Annotated[
    Union[
        StepEvent,
        ChunkEvent,
        GapAnalysisEvent,
        ReplaceEvent,
        FormattedEvent,
        CompleteEvent,
        ErrorEvent,
        MismatchEvent,
    ],
    Field(discriminator="type"),
]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error", "mismatch"})


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ModelEndpointOverride(BaseModel):
    """Per-model endpoint override (e.g. a model served from a different provider)."""
    endpoint: str = Field(description="Base URL for this model's endpoint")
    api_key: str | None = Field(default=None, description="API key override (falls back to azure.api_key)")
    api_version: str | None = Field(default=None, description="API version override")
    api_type: str | None = Field(default=None, description="Force api_type (e.g. 'anthropic', 'openai')")


class ModelConfig(BaseModel):
    """LLM model per agent role."""
    default: str = Field(default="claude-sonnet-4-5-20250929", description="Default model")
    detector: str | None = Field(default="claude-haiku-4-5-20251001")
    analyzer: str | None = Field(default="claude-haiku-4-5-20251001")
    drafter: str | None = Field(default=None)
    sanitizer: str | None = Field(default="claude-haiku-4-5-20251001")
    reviewer: str | None = Field(default="claude-haiku-4-5-20251001")
    refiner: str | None = Field(default=None)
    formatter: str | None = Field(default="claude-haiku-4-5-20251001")
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key (or ${ENV_VAR})")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ModelRate(BaseModel):
    """USD per million tokens."""
    input: float = Field(ge=0.0)
    output: float = Field(ge=0.0)


class ProjectConfig(BaseModel):
    """Top-level configuration for the generation pipeline."""
    project_name: str = Field(default="course-content")

    azure: AzureConfig = Field(default_factory=AzureConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)
    pricing: dict[str, ModelRate] = Field(
        default_factory=dict,
        description="Extends/overrides the built-in rate table; key 'default' sets the unknown-model rate",
    )

    # Tuning
    review_max_rounds: int = Field(default=2, ge=0, description="Max review/refine iterations")
    polish_threshold: float = Field(default=9.0, description="Scores at or above this need no polish")
    max_tokens: int = Field(default=4096, description="Max output tokens per call")
    temperature: float = Field(default=0.7)
    timeout: int = Field(default=120, description="LLM call timeout in seconds")
    seed: int = Field(default=42, description="LLM seed for reproducibility")

    # Input truncation limits (characters)
    detector_transcript_chars: int = Field(default=5000)
    drafter_transcript_chars: int = Field(default=20000)
    sanitizer_transcript_chars: int = Field(default=50000)
    reviewer_content_chars: int = Field(default=15000)

    # Post-processing
    strip_ai_patterns: bool = Field(default=False, description="Remove AI meta-commentary before completing")

    # Gap analysis cache
    cache_max_age_seconds: int = Field(default=1800)
    cache_max_entries: int = Field(default=20)
