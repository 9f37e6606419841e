"""Search/replace patch engine for partial edits.

Patch text uses conflict-marker style blocks::

    <<<<<<< SEARCH
    exact text to find
    =======
    replacement text
    >>>>>>> REPLACE

Blocks are applied in order against the progressively patched text. A block
whose search text is not found is skipped; the document is never truncated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from ..models import PatchBlock, PatchResult

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(
    r"<<<<<<< SEARCH\n(.*?)\n=======\n(.*?)\n?>>>>>>>[^\n]*",
    re.DOTALL,
)


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n")


def parse_patch_blocks(patch_text: str) -> list[PatchBlock]:
    """Extract ordered search/replace pairs from refiner output."""
    text = _normalize_newlines(patch_text or "")
    return [PatchBlock(search=m.group(1), replace=m.group(2)) for m in _BLOCK_RE.finditer(text)]


def apply_patch(original: str, blocks: Iterable[PatchBlock]) -> PatchResult:
    """Apply *blocks* in order, replacing the first exact occurrence of each search text."""
    result = _normalize_newlines(original or "")
    applied: list[PatchBlock] = []
    skipped: list[PatchBlock] = []

    for block in blocks:
        search = _normalize_newlines(block.search)
        if search and search in result:
            result = result.replace(search, _normalize_newlines(block.replace), 1)
            applied.append(block)
        else:
            logger.warning("Patch block not found, skipping: %r", search[:50])
            skipped.append(block)

    return PatchResult(text=result, applied=applied, skipped=skipped)


def apply_patch_text(original: str, patch_text: str) -> PatchResult:
    """Parse *patch_text* into blocks and apply them to *original*."""
    return apply_patch(original, parse_patch_blocks(patch_text))
