"""Tests for tools/assignment_validator.py — question normalization."""

from __future__ import annotations

import pytest

from course_content_generator.models import AssignmentCounts, QuestionType
from course_content_generator.tools.assignment_validator import (
    count_questions,
    is_legacy_shape,
    normalize_assignment_item,
    normalize_assignment_items,
    validate_question_counts,
)

NATIVE = {
    "questionType": "mcsc",
    "contentBody": "Q",
    "options": {"1": "a", "2": "b", "3": "c", "4": "d"},
    "mcscAnswer": 2,
    "answerExplanation": "e",
}

LEGACY_MCMC = {
    "type": "mcmc",
    "question_text": "Pick two",
    "options": ["a", "b", "c", "d"],
    "correct_options": ["A", "C"],
    "explanation": "x",
    "difficulty": "easy",
}


class TestNormalizeItem:
    def test_native(self):
        item = normalize_assignment_item(NATIVE)
        assert item.mcsc_answer == 2

    def test_native_letter_answer(self):
        item = normalize_assignment_item({**NATIVE, "mcscAnswer": "C"})
        assert item.mcsc_answer == 3

    def test_native_drops_foreign_answers(self):
        item = normalize_assignment_item({**NATIVE, "mcmcAnswer": "", "subjectiveAnswer": None})
        assert item.mcmc_answer is None and item.subjective_answer is None

    def test_snake_case_keys(self):
        item = normalize_assignment_item({
            "question_type": "subjective",
            "content_body": "Explain",
            "subjective_answer": "Answer",
        })
        assert item.question_type == QuestionType.SUBJECTIVE
        assert item.answer_explanation == "Explanation pending."

    def test_legacy_mcmc(self):
        assert is_legacy_shape(LEGACY_MCMC)
        item = normalize_assignment_item(LEGACY_MCMC)
        assert item.question_type == QuestionType.MCMC
        assert item.mcmc_answer == "1, 3"
        assert item.options[2] == "b"
        assert item.difficulty_level.value == "Easy"

    def test_legacy_mcq_alias(self):
        item = normalize_assignment_item({
            "type": "mcq",
            "question": "Q",
            "options": ["a", "b"],
            "correct_option": "Option B",
        })
        assert item.question_type == QuestionType.MCSC
        assert item.mcsc_answer == 2

    def test_legacy_subjective(self):
        item = normalize_assignment_item({"type": "subjective", "question_text": "Q", "model_answer": "A"})
        assert item.subjective_answer == "A"

    def test_invalid_raises_value_error(self):
        with pytest.raises(ValueError):
            normalize_assignment_item({**NATIVE, "mcscAnswer": None})

    def test_non_dict_raises(self):
        with pytest.raises(ValueError):
            normalize_assignment_item("question")


class TestNormalizeItems:
    def test_collects_errors_per_index(self):
        report = normalize_assignment_items([NATIVE, {"questionType": "mcsc"}])
        assert len(report.items) == 1
        assert report.errors[0].startswith("[1]")
        assert not report.is_valid

    def test_unwraps_questions_key(self):
        report = normalize_assignment_items({"questions": [NATIVE]})
        assert report.is_valid

    def test_non_list_root(self):
        report = normalize_assignment_items({"score": 3})
        assert not report.is_valid
        assert report.errors

    def test_empty_list_is_not_valid(self):
        assert not normalize_assignment_items([]).is_valid


class TestQuestionCounts:
    def test_count(self):
        items = [normalize_assignment_item(NATIVE), normalize_assignment_item(LEGACY_MCMC)]
        assert count_questions(items) == AssignmentCounts(mcsc=1, mcmc=1, subjective=0)

    def test_matches(self):
        items = [normalize_assignment_item(NATIVE)]
        check = validate_question_counts(items, AssignmentCounts(mcsc=1, mcmc=0, subjective=0))
        assert check.matches
        assert check.message == ""

    def test_mismatch_message(self):
        items = [normalize_assignment_item(NATIVE)]
        check = validate_question_counts(items, AssignmentCounts())
        assert not check.matches
        assert "MCSC: got 1, expected 2" in check.message
        assert "Subjective: got 0, expected 1" in check.message
