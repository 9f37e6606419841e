"""Multi-agent generation of lecture notes, pre-reads and assignments."""

from .models import ContentMode, GenerationRequest, PipelineState, ProjectConfig
from .pipeline import AgentSet, GenerationRun, Orchestrator, RunCost
from .transport import AG2Transport, CancellationToken

__version__ = "0.1.0"

__all__ = [
    "AG2Transport",
    "AgentSet",
    "CancellationToken",
    "ContentMode",
    "GenerationRequest",
    "GenerationRun",
    "Orchestrator",
    "PipelineState",
    "ProjectConfig",
    "RunCost",
]
