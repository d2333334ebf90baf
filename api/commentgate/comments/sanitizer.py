"""Comment text cleaning and threat pattern rejection.

Pure functions, no I/O. Content that looks like markup injection is rejected
outright rather than escaped: comments are plain text and rendered as such.
"""

import re
from collections import Counter
from dataclasses import dataclass


DEFAULT_MAX_LENGTH = 4000

# Cut at a word boundary only if one exists this close to the limit
WORD_BOUNDARY_WINDOW = 100

ELLIPSIS = "…"

URL_PATTERN = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)

DANGEROUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),  # onclick=, onerror=, ...
    re.compile(r"data:\s*text/html", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
]

EXCESS_NEWLINES = re.compile(r"\n{4,}")

# Control characters except \t (0x09), \n (0x0A) and \r (0x0D)
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


@dataclass(frozen=True)
class SanitizeResult:
    content: str
    link_count: int
    truncated: bool
    rejected: bool
    reject_reason: str | None = None


def _rejected(reason: str) -> SanitizeResult:
    return SanitizeResult(
        content="",
        link_count=0,
        truncated=False,
        rejected=True,
        reject_reason=reason,
    )


def count_links(content: str) -> int:
    """Count http(s) URLs in content."""
    return len(URL_PATTERN.findall(content))


def sanitize_content(content: str | None, max_length: int = DEFAULT_MAX_LENGTH) -> SanitizeResult:
    """Clean submitted comment text.

    Rejects empty input and anything matching a dangerous pattern. Otherwise
    strips control characters, trims, collapses 4+ newlines to 3, counts links
    and truncates to ``max_length`` (plus a trailing ellipsis).
    """
    if not content or not CONTROL_CHARS.sub("", content).strip():
        return _rejected("Empty content")

    if any(pattern.search(content) for pattern in DANGEROUS_PATTERNS):
        return _rejected("Contains potentially dangerous content")

    # Control characters go first so they cannot split whitespace runs
    sanitized = CONTROL_CHARS.sub("", content).strip()
    sanitized = EXCESS_NEWLINES.sub("\n\n\n", sanitized)

    # Links are counted on the full text, before truncation
    link_count = count_links(sanitized)

    truncated = False
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        last_space = sanitized.rfind(" ")
        if last_space > 0 and last_space > max_length - WORD_BOUNDARY_WINDOW:
            sanitized = sanitized[:last_space]
        sanitized += ELLIPSIS
        truncated = True

    return SanitizeResult(
        content=sanitized,
        link_count=link_count,
        truncated=truncated,
        rejected=False,
    )


def is_repetitive(content: str, threshold: int = 5) -> bool:
    """True when any word longer than 2 characters appears more than ``threshold`` times."""
    counts = Counter(word for word in content.lower().split() if len(word) > 2)
    return any(count > threshold for count in counts.values())
