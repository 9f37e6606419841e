"""Tolerant JSON extraction for LLM output.

Recovery stages, first success wins:

1. verbatim ``json.loads``
2. first balanced ``{...}`` / ``[...]`` span
3. span with markdown fences stripped
4. trailing commas (and smart quotes) removed
5. from the first ``{`` to end of text, with the same cleanup

No stage touches the network; the same input always yields the same output.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ParseError

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?|\n?```")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_SMART_QUOTES = {"“": '"', "”": '"', "‘": "'", "’": "'"}


def strip_fences(text: str) -> str:
    """Remove markdown code-fence markers."""
    return _FENCE_RE.sub("", text).strip()


def remove_trailing_commas(text: str) -> str:
    """Drop commas directly before a closing brace/bracket and normalize smart quotes."""
    for smart, plain in _SMART_QUOTES.items():
        text = text.replace(smart, plain)
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def extract_balanced(text: str) -> str | None:
    """Return the first balanced ``{...}`` or ``[...]`` span, ignoring brackets inside strings."""
    start = -1
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            break
    if start == -1:
        return None

    stack: list[str] = []
    in_string = False
    escaped = False
    pairs = {"{": "}", "[": "]"}
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in pairs:
            stack.append(pairs[ch])
        elif ch in "}]":
            if not stack or stack[-1] != ch:
                return None
            stack.pop()
            if not stack:
                return text[start:i + 1]
    return None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _try_loads(candidate: str | None) -> tuple[bool, Any]:
    if candidate is None or not candidate.strip():
        return False, None
    try:
        return True, json.loads(candidate, parse_constant=_reject_constant)
    except (ValueError, RecursionError):
        return False, None


def _candidates(text: str):
    yield "verbatim", text

    span = extract_balanced(text)
    yield "balanced span", span

    # Fenced output often hides the span behind the fence language tag, so
    # fences are stripped from the full text when no span was found.
    unfenced = strip_fences(span if span is not None else text)
    span_unfenced = extract_balanced(unfenced) or unfenced
    yield "fence strip", span_unfenced

    yield "trailing comma", remove_trailing_commas(span_unfenced)

    cleaned = remove_trailing_commas(strip_fences(text))
    brace = cleaned.find("{")
    if brace != -1:
        tail = cleaned[brace:]
        yield "brace tail", extract_balanced(tail) or tail


def parse_llm_json(text: str, fallback: T = MISSING) -> Any | T:
    """Parse JSON out of LLM output, returning *fallback* when every stage fails.

    Raises:
        ParseError: if all stages fail and no fallback was supplied.
    """
    if text:
        for stage, candidate in _candidates(text):
            ok, value = _try_loads(candidate)
            if ok:
                if stage != "verbatim":
                    logger.debug("Recovered JSON via %s", stage)
                return value

    if fallback is not MISSING:
        logger.warning("JSON recovery failed, using fallback: %r", (text or "")[:80])
        return fallback
    raise ParseError(text or "")


def parse_llm_json_as(text: str, model_cls: type[M], fallback: T = MISSING) -> M | T:
    """Recover JSON from *text* and validate it into *model_cls*.

    Validation errors are treated like parse failures: the fallback is
    returned, or ``ParseError`` raised when none was supplied.
    """
    value = parse_llm_json(text, None if fallback is not MISSING else MISSING)
    if value is not None:
        try:
            return model_cls.model_validate(value)
        except ValidationError as e:
            logger.warning("%s validation failed: %s", model_cls.__name__, e.error_count())
    if fallback is not MISSING:
        return fallback
    raise ParseError(text or "")
