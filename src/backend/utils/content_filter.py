"""
Filtering of assistant output before it is stored, logged or displayed as a
final answer.

Removes internal reasoning blocks, tool-code blocks and the bracketed tool
status annotations that are interleaved into the live stream.
"""

from __future__ import annotations

import re

from core.constants import MAX_FILTERED_CONTENT_LENGTH

THINK_TAG_PATTERN = re.compile(r"<think(?:ing)?>.*?</think(?:ing)?>", re.IGNORECASE | re.DOTALL)

TOOL_CODE_TAG_PATTERN = re.compile(r"<tool_code>.*?</tool_code>", re.IGNORECASE | re.DOTALL)

TOOL_STATUS_PATTERN = re.compile(
    r"\[(?:Calling tool|Executing tools?|Tool execution|Tool result|Tool error|Tool failed"
    r"|Tool completed|Tool calls requested|Tool \S+ executed|Continuing conversation|Step [0-9]+"
    r"|Using tool|Task complete|Task started|Processing|Tool thinking|Tool output|Result"
    r"|Executing)[^\]]*\]",
    re.IGNORECASE,
)

_WHITESPACE_RUN = re.compile(r"\s{2,}")


def filter_content(content: str | None) -> str:
    """Strip reasoning/tool markup, collapse whitespace runs, trim and cap length."""
    if content is None:
        return ""

    filtered = THINK_TAG_PATTERN.sub("", content)
    filtered = TOOL_CODE_TAG_PATTERN.sub("", filtered)
    filtered = TOOL_STATUS_PATTERN.sub("", filtered)
    filtered = _WHITESPACE_RUN.sub(" ", filtered).strip()
    return filtered[:MAX_FILTERED_CONTENT_LENGTH]


def contains_filtered_markup(content: str | None) -> bool:
    """True if ``filter_content`` would remove anything besides whitespace."""
    if not content:
        return False
    return any(
        pattern.search(content) for pattern in (THINK_TAG_PATTERN, TOOL_CODE_TAG_PATTERN, TOOL_STATUS_PATTERN)
    )


__all__ = ["contains_filtered_markup", "filter_content"]
