"""Remove AI-sounding meta-commentary from generated content."""

from __future__ import annotations

import re

# Meta-commentary, self-reference and hedging phrases removed outright.
FORBIDDEN_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"according to the (transcript|topic|lecture|material|subtopic|content)", re.IGNORECASE),
    re.compile(r"based on (the |what )?(we|I|you) (discussed|covered|provided|mentioned)", re.IGNORECASE),
    re.compile(r"as (we |I )?(mentioned|discussed|covered|noted|stated) (earlier|above|before|previously)", re.IGNORECASE),
    re.compile(r"in (this|the) (lecture|session|module|pre-?read|transcript)", re.IGNORECASE),
    re.compile(r"from the (transcript|lecture|material|content)", re.IGNORECASE),
    re.compile(r"as an AI( language model| assistant)?", re.IGNORECASE),
    re.compile(r"I('ve| have) (created|generated|written|prepared|compiled)", re.IGNORECASE),
    re.compile(r"I (can|will|would) (help you|assist you|provide)", re.IGNORECASE),
    re.compile(r"if you (want|need|would like) (me to|I can)", re.IGNORECASE),
    re.compile(r"let me know if you('d| would) like", re.IGNORECASE),
    re.compile(r"feel free to (ask|reach out|contact)", re.IGNORECASE),
    re.compile(r"this (section|module|lesson|content) (covers|explains|discusses)", re.IGNORECASE),
    re.compile(r"in this (section|module|lesson), you('ll| will) learn", re.IGNORECASE),
    re.compile(r"the following (section|content|material) (will|is going to)", re.IGNORECASE),
    re.compile(r"now (let's|we will|we'll) (look at|explore|discuss|examine)", re.IGNORECASE),
    re.compile(r"it('s| is) important to note that", re.IGNORECASE),
    re.compile(r"it('s| is) worth mentioning that", re.IGNORECASE),
    re.compile(r"please note that", re.IGNORECASE),
]

REPLACEMENTS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\blet's\b", re.IGNORECASE), "we"),
    (re.compile(r"\bI'd like to\b", re.IGNORECASE), ""),
    (re.compile(r"\bwe've seen that\b", re.IGNORECASE), ""),
    (re.compile(r"\bas we can see\b", re.IGNORECASE), ""),
]

_FENCE_LINE_RE = re.compile(r"^\s*```")


def _clean_prose(text: str) -> str:
    for pattern in FORBIDDEN_PATTERNS:
        text = pattern.sub("", text)
    for pattern, replacement in REPLACEMENTS:
        text = pattern.sub(replacement, text)

    text = re.sub(r"(?<=\S)  +", " ", text)
    text = re.sub(r"(?m)^ (?=\S)", "", text)
    text = re.sub(r"\.\s*\.", ".", text)
    text = re.sub(r",\s*\.", ".", text)
    text = re.sub(r"(?m)^[ \t]*,[ \t]*", "", text)
    text = re.sub(r"\(\s*\)", "", text)
    return text


def sanitize_ai_patterns(content: str) -> str:
    """Strip meta-commentary while leaving fenced code blocks untouched."""
    out: list[str] = []
    prose: list[str] = []
    in_fence = False

    def _flush() -> None:
        if prose:
            cleaned = _clean_prose("\n".join(prose))
            out.extend(line.rstrip() for line in cleaned.split("\n"))
            prose.clear()

    for line in content.split("\n"):
        if _FENCE_LINE_RE.match(line):
            if not in_fence:
                _flush()
            out.append(line)
            in_fence = not in_fence
        elif in_fence:
            out.append(line)
        else:
            prose.append(line)
    _flush()

    return re.sub(r"\n{3,}", "\n\n", "\n".join(out)).strip()


def detect_ai_patterns(content: str) -> list[str]:
    """Return every meta-commentary phrase found in *content*."""
    detected: list[str] = []
    for pattern in FORBIDDEN_PATTERNS:
        detected.extend(m.group(0) for m in pattern.finditer(content))
    return detected
