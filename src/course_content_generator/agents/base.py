"""Agent capability protocols shared by every pipeline stage.

Agents are independent classes; the Orchestrator depends only on these
protocols, so tests can substitute any object with the same shape.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict

from ..transport import CancellationToken, LLMTransport

T = TypeVar("T")


class AgentPrompt(BaseModel):
    """System instructions plus the single user message sent to the model."""
    model_config = ConfigDict(frozen=True)

    system: str
    user: str

    @property
    def text(self) -> str:
        return f"{self.system}\n\n{self.user}"


@dataclass
class AgentOutcome(Generic[T]):
    """Typed result of one agent step plus what was exchanged with the model.

    ``prompt`` is ``None`` when the step finished without calling the model.
    """
    result: T
    prompt: AgentPrompt | None
    raw: str = ""
    failed: bool = False

    @property
    def invoked(self) -> bool:
        return self.prompt is not None


@runtime_checkable
class Agent(Protocol):
    identity: str
    target_model: str

    def build_prompt(self, *args: Any, **kwargs: Any) -> AgentPrompt: ...
    def invoke(self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None) -> str: ...


@runtime_checkable
class StreamingAgent(Protocol):
    identity: str
    target_model: str

    def build_prompt(self, *args: Any, **kwargs: Any) -> AgentPrompt: ...
    def invoke_streaming(
        self, prompt: AgentPrompt, cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]: ...


def invoke_text(
    transport: LLMTransport,
    prompt: AgentPrompt,
    model: str,
    *,
    max_tokens: int | None = None,
    temperature: float | None = None,
    cancel_token: CancellationToken | None = None,
) -> str:
    """Single round-trip returning the response text."""
    response = transport.invoke(
        prompt.system,
        [{"role": "user", "content": prompt.user}],
        model,
        max_tokens=max_tokens,
        temperature=temperature,
        cancel_token=cancel_token,
    )
    return response.text


def truncate(text: str, limit: int, marker: str = "...[truncated]") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + marker
