"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from course_content_generator.models import ProjectConfig
from course_content_generator.transport import LLMResponse

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"
SAMPLE_TRANSCRIPT = FIXTURES_DIR / "sample_transcript.txt"


class FakeTransport:
    """Scripted transport: invoke replies are served in order, streams yield fixed chunks.

    An ``Exception`` instance in ``replies`` is raised instead of returned.
    """

    def __init__(self, replies: list | None = None, chunks: list[str] | None = None) -> None:
        self.replies = list(replies or [])
        self.chunks = list(chunks or [])
        self.stream_error: Exception | None = None
        self.invocations: list[dict] = []
        self.streams: list[dict] = []

    def invoke(self, system, messages, model, *, max_tokens=None, temperature=None, cancel_token=None):
        self.invocations.append({
            "system": system, "messages": messages, "model": model, "temperature": temperature,
        })
        if not self.replies:
            raise AssertionError(f"Unexpected invoke #{len(self.invocations)} for model {model}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse.from_text(reply)

    def stream(self, system, messages, model, *, max_tokens=None, temperature=None, cancel_token=None):
        self.streams.append({"system": system, "messages": messages, "model": model})
        for chunk in self.chunks:
            if cancel_token is not None and cancel_token.cancelled:
                return
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error


def detector_reply(domain: str = "software-engineering") -> str:
    return json.dumps({
        "domain": domain,
        "confidence": 0.9,
        "characteristics": {
            "exampleTypes": ["code walkthroughs"],
            "formats": ["code blocks"],
            "vocabulary": ["stack frame"],
            "styleHints": ["concise"],
            "relatableExamples": ["browser history"],
        },
        "contentGuidelines": "Show code before theory.",
        "qualityCriteria": "Code must run.",
    })


def review_reply(score: float, issues: list | None = None, hallucinations: bool = False) -> str:
    return json.dumps({
        "score": score,
        "has_hallucinations": hallucinations,
        "summary": "Review summary.",
        "issues": issues or [],
    })


MCSC_ITEM = {
    "questionType": "mcsc",
    "contentBody": "Q",
    "options": {"1": "a", "2": "b", "3": "c", "4": "d"},
    "mcscAnswer": 2,
    "answerExplanation": "e",
}


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def sample_transcript() -> str:
    return SAMPLE_TRANSCRIPT.read_text(encoding="utf-8")


@pytest.fixture
def config() -> ProjectConfig:
    return ProjectConfig()


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()
