"""Deterministic tools: JSON repair, patching, costing and content validation."""

from .json_repair import parse_llm_json, parse_llm_json_as
from .patcher import apply_patch, apply_patch_text, parse_patch_blocks

__all__ = [
    "apply_patch",
    "apply_patch_text",
    "parse_llm_json",
    "parse_llm_json_as",
    "parse_patch_blocks",
]
