"""Per-orchestrator collaborators: logger, metrics sink and result cache.

One ``PipelineContext`` belongs to one ``Orchestrator``; nothing here is
process-global.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from .models import ProjectConfig


class AgentCallRecord(BaseModel):
    """One agent invocation as seen by the metrics sink."""
    agent: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    duration: float = 0.0
    success: bool = True


class AgentSummary(BaseModel):
    count: int = 0
    total_time: float = 0.0
    avg_time: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


class RunMetrics:
    """Collects per-call timing, token and cost records."""

    def __init__(self) -> None:
        self.records: list[AgentCallRecord] = []

    def record(self, record: AgentCallRecord) -> None:
        self.records.append(record)

    def total_cost(self) -> float:
        return sum(r.cost for r in self.records)

    def summary_by_agent(self) -> dict[str, AgentSummary]:
        summary: dict[str, AgentSummary] = {}
        for r in self.records:
            s = summary.setdefault(r.agent, AgentSummary())
            s.count += 1
            s.total_time += r.duration
            s.avg_time = s.total_time / s.count
            s.input_tokens += r.input_tokens
            s.output_tokens += r.output_tokens
            s.cost += r.cost
        return summary

    def clear(self) -> None:
        self.records.clear()


@dataclass
class _CacheEntry:
    data: Any
    timestamp: float


class ResultCache:
    """Small TTL cache; the oldest entries are evicted past ``max_entries``."""

    def __init__(
        self,
        max_age: float = 1800.0,
        max_entries: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age = max_age
        self.max_entries = max_entries
        self._clock = clock
        self._store: dict[str, _CacheEntry] = {}

    @staticmethod
    def make_key(prefix: str, *parts: str) -> str:
        digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]
        return f"{prefix}:{digest}"

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.max_age:
            del self._store[key]
            return None
        return entry.data

    def set(self, key: str, data: Any) -> None:
        self._store[key] = _CacheEntry(data=data, timestamp=self._clock())
        self._prune()

    def _prune(self) -> None:
        if len(self._store) <= self.max_entries:
            return
        oldest = sorted(self._store.items(), key=lambda kv: kv[1].timestamp)
        for key, _ in oldest[: len(self._store) - self.max_entries]:
            del self._store[key]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self._store)

    def clear(self) -> None:
        self._store.clear()


@dataclass
class PipelineContext:
    """Dependency bundle handed to an Orchestrator at construction."""
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("course_content_generator"))
    metrics: RunMetrics = field(default_factory=RunMetrics)
    cache: ResultCache = field(default_factory=ResultCache)

    @classmethod
    def from_config(cls, config: ProjectConfig) -> PipelineContext:
        return cls(
            cache=ResultCache(
                max_age=float(config.cache_max_age_seconds),
                max_entries=config.cache_max_entries,
            ),
        )
