"""LLM transport: the black-box text/streaming interface agents call through."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from typing import Any, Protocol

import autogen
import openai
from pydantic import BaseModel, Field

from .config import build_model_llm_config
from .errors import AgentInvocationError
from .models import ProjectConfig

logger = logging.getLogger(__name__)

Message = dict[str, str]


class CancellationToken:
    """Cooperative cancellation flag shared between a run and its caller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ContentBlock(BaseModel):
    type: str = "text"
    text: str = ""


class LLMResponse(BaseModel):
    """Non-streaming response: a sequence of typed content blocks."""
    content: list[ContentBlock] = Field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if b.type == "text")

    @classmethod
    def from_text(cls, text: str) -> LLMResponse:
        return cls(content=[ContentBlock(text=text)])


class LLMTransport(Protocol):
    """Anything that can serve single-shot and streaming completions."""

    def invoke(
        self,
        system: str,
        messages: list[Message],
        model: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> LLMResponse: ...

    def stream(
        self,
        system: str,
        messages: list[Message],
        model: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]: ...


def _reply_text(reply: Any) -> str:
    """Extract text from an AG2 ``generate_reply`` result."""
    if reply is None:
        return ""
    if isinstance(reply, dict):
        return str(reply.get("content") or "")
    return str(reply)


class AG2Transport:
    """Transport backed by AG2 agents, with OpenAI-SDK streaming.

    Single-shot calls build a one-off ``autogen.AssistantAgent`` for the
    requested model and ask it for a reply. Streaming talks to the same
    endpoint through the OpenAI client, which AG2 itself uses underneath.
    """

    def __init__(self, config: ProjectConfig) -> None:
        self.config = config

    def _llm_config(self, model: str, max_tokens: int | None, temperature: float | None) -> dict[str, Any]:
        llm_config = build_model_llm_config(model, self.config)
        llm_config["max_tokens"] = max_tokens or self.config.max_tokens
        llm_config["temperature"] = self.config.temperature if temperature is None else temperature
        return llm_config

    def invoke(
        self,
        system: str,
        messages: list[Message],
        model: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> LLMResponse:
        if cancel_token is not None and cancel_token.cancelled:
            raise AgentInvocationError(model, "Cancelled before invocation")
        try:
            agent = autogen.AssistantAgent(
                name="Assistant",
                system_message=system,
                llm_config=self._llm_config(model, max_tokens, temperature),
                human_input_mode="NEVER",
            )
            reply = agent.generate_reply(messages=messages)
        except Exception as e:
            raise AgentInvocationError(model, f"{type(e).__name__}: {e}") from e
        return LLMResponse.from_text(_reply_text(reply))

    def _openai_client(self, entry: dict[str, Any]) -> openai.OpenAI:
        if entry.get("api_type") == "azure":
            return openai.AzureOpenAI(
                api_key=entry.get("api_key") or None,
                api_version=entry.get("api_version") or None,
                azure_endpoint=entry["azure_endpoint"],
                timeout=self.config.timeout,
            )
        return openai.OpenAI(
            api_key=entry.get("api_key") or None,
            base_url=entry.get("base_url") or None,
            timeout=self.config.timeout,
        )

    def stream(
        self,
        system: str,
        messages: list[Message],
        model: str,
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Iterator[str]:
        llm_config = self._llm_config(model, max_tokens, temperature)
        entry = llm_config["config_list"][0]
        try:
            client = self._openai_client(entry)
            response = client.chat.completions.create(
                model=entry.get("azure_deployment", model),
                messages=[{"role": "system", "content": system}, *messages],
                max_tokens=llm_config["max_tokens"],
                temperature=llm_config["temperature"],
                stream=True,
            )
        except openai.OpenAIError as e:
            raise AgentInvocationError(model, f"{type(e).__name__}: {e}") from e

        try:
            for chunk in response:
                if cancel_token is not None and cancel_token.cancelled:
                    logger.debug("Stream for %s cancelled", model)
                    return
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except openai.OpenAIError as e:
            raise AgentInvocationError(model, f"{type(e).__name__}: {e}") from e
        finally:
            response.close()
