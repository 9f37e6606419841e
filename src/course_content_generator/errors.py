"""Exception types raised by the generation pipeline."""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for pipeline errors."""


class AgentInvocationError(GenerationError):
    """The LLM transport failed while serving a call (network, auth, quota)."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(message)
        self.source = source


class ParseError(GenerationError):
    """LLM output could not be recovered into JSON and no fallback was supplied."""

    def __init__(self, text: str) -> None:
        self.snippet = text[:200]
        super().__init__(f"Failed to parse agent JSON response: {self.snippet!r}")


class RunConsumedError(GenerationError):
    """A generation run was iterated more than once."""
