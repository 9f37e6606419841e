"""Normalization and validation of structured assignment questions.

Accepts both the LMS export shape (``questionType`` / ``contentBody`` /
``mcscAnswer`` ...) and the legacy drafting shape (``type`` /
``question_text`` / ``correct_option`` ...), and produces ``AssignmentItem``
values that satisfy the one-answer-per-type invariant.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ..models import AssignmentCounts, AssignmentItem, QuestionType

logger = logging.getLogger(__name__)

_LETTERS = {"A": 1, "B": 2, "C": 3, "D": 4}
_TYPE_ALIASES = {
    "mcsc": QuestionType.MCSC,
    "mcq": QuestionType.MCSC,
    "single": QuestionType.MCSC,
    "mcmc": QuestionType.MCMC,
    "multiple": QuestionType.MCMC,
    "subjective": QuestionType.SUBJECTIVE,
}
_ANSWER_FIELDS = {
    QuestionType.MCSC: "mcscAnswer",
    QuestionType.MCMC: "mcmcAnswer",
    QuestionType.SUBJECTIVE: "subjectiveAnswer",
}
_SNAKE_TO_ALIAS = {
    "question_type": "questionType",
    "content_type": "contentType",
    "content_body": "contentBody",
    "mcsc_answer": "mcscAnswer",
    "mcmc_answer": "mcmcAnswer",
    "subjective_answer": "subjectiveAnswer",
    "difficulty_level": "difficultyLevel",
    "answer_explanation": "answerExplanation",
}


class NormalizationReport(BaseModel):
    """Items that normalized cleanly plus per-index errors for the rest."""
    items: list[AssignmentItem] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors and bool(self.items)


class CountCheck(BaseModel):
    matches: bool
    actual: AssignmentCounts
    message: str = ""


def _option_index(value: Any) -> int | None:
    """Map 'B', 'b', '2', 2 or 'Option B' to an option index."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    token = str(value).strip().upper()
    if token.startswith("OPTION "):
        token = token[len("OPTION "):].strip()
    token = token.rstrip(").")
    if token in _LETTERS:
        return _LETTERS[token]
    if token.isdigit():
        return int(token)
    return None


def _indices(value: Any) -> list[int | None]:
    parts = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return [_option_index(p) for p in parts if str(p).strip()]


def _resolve_type(raw: Any) -> QuestionType | None:
    if isinstance(raw, QuestionType):
        return raw
    return _TYPE_ALIASES.get(str(raw or "").strip().lower())


def is_legacy_shape(raw: dict[str, Any]) -> bool:
    return "questionType" not in raw and "question_type" not in raw and (
        "type" in raw or "question_text" in raw or "question" in raw
    )


def _from_legacy(raw: dict[str, Any]) -> dict[str, Any]:
    qtype = _resolve_type(raw.get("type"))
    data: dict[str, Any] = {
        "questionType": qtype.value if qtype else raw.get("type"),
        "contentBody": raw.get("question_text") or raw.get("question") or "",
        "options": raw.get("options") or {},
        "answerExplanation": raw.get("explanation") or "Explanation pending.",
    }
    if raw.get("difficulty"):
        data["difficultyLevel"] = raw["difficulty"]

    if qtype == QuestionType.MCSC:
        answer = raw.get("correct_option", raw.get("answer"))
        data["mcscAnswer"] = _option_index(answer) if answer is not None else None
    elif qtype == QuestionType.MCMC:
        answer = raw.get("correct_options") or raw.get("correct_option") or raw.get("answer")
        if answer is not None:
            data["mcmcAnswer"] = [i for i in _indices(answer) if i is not None]
    elif qtype == QuestionType.SUBJECTIVE:
        data["subjectiveAnswer"] = raw.get("model_answer") or raw.get("answer")
    return data


def _from_native(raw: dict[str, Any]) -> dict[str, Any]:
    data = {_SNAKE_TO_ALIAS.get(k, k): v for k, v in raw.items()}
    qtype = _resolve_type(data.get("questionType"))
    if qtype is None:
        return data
    data["questionType"] = qtype.value
    # Keep only the answer field that belongs to this question type.
    for other_type, field_name in _ANSWER_FIELDS.items():
        if other_type != qtype:
            data.pop(field_name, None)
    if qtype == QuestionType.MCSC and data.get("mcscAnswer") is not None:
        data["mcscAnswer"] = _option_index(data["mcscAnswer"])
    if qtype == QuestionType.MCMC and data.get("mcmcAnswer") not in (None, ""):
        data["mcmcAnswer"] = [i for i in _indices(data["mcmcAnswer"]) if i is not None]
    if not data.get("answerExplanation"):
        data["answerExplanation"] = "Explanation pending."
    return data


def normalize_assignment_item(raw: Any) -> AssignmentItem:
    """Convert one raw question dict into an ``AssignmentItem``.

    Raises:
        ValueError: if the dict cannot satisfy the AssignmentItem invariants.
    """
    if isinstance(raw, AssignmentItem):
        return raw
    if not isinstance(raw, dict):
        raise ValueError(f"question must be an object, got {type(raw).__name__}")
    data = _from_legacy(raw) if is_legacy_shape(raw) else _from_native(raw)
    try:
        return AssignmentItem.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def normalize_assignment_items(value: Any) -> NormalizationReport:
    """Normalize a parsed JSON value into AssignmentItems, collecting errors per index."""
    if isinstance(value, dict):
        for key in ("questions", "items", "assignment"):
            if isinstance(value.get(key), list):
                value = value[key]
                break
    if not isinstance(value, list):
        return NormalizationReport(errors=["root: content must be an array of questions"])

    report = NormalizationReport()
    for idx, raw in enumerate(value):
        try:
            report.items.append(normalize_assignment_item(raw))
        except ValueError as e:
            report.errors.append(f"[{idx}] {e}")
    return report


def count_questions(items: list[AssignmentItem]) -> AssignmentCounts:
    return AssignmentCounts(
        mcsc=sum(1 for q in items if q.question_type == QuestionType.MCSC),
        mcmc=sum(1 for q in items if q.question_type == QuestionType.MCMC),
        subjective=sum(1 for q in items if q.question_type == QuestionType.SUBJECTIVE),
    )


def validate_question_counts(items: list[AssignmentItem], expected: AssignmentCounts) -> CountCheck:
    """Compare the per-type question counts against what was requested."""
    actual = count_questions(items)
    parts: list[str] = []
    for label, got, want in (
        ("MCSC", actual.mcsc, expected.mcsc),
        ("MCMC", actual.mcmc, expected.mcmc),
        ("Subjective", actual.subjective, expected.subjective),
    ):
        if got != want:
            parts.append(f"{label}: got {got}, expected {want}")
    return CountCheck(matches=not parts, actual=actual, message="; ".join(parts))
