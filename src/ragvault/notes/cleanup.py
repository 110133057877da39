"""Text cleanup for saved conversations.

Strips the markup RAGFlow leaves in answers (reasoning blocks, citation
markers, stray HTML) so that saved notes read as plain Markdown.
"""

import re

_THINK_BLOCK = re.compile(r"<think>[\s\S]*?</think>")
_HTML_TAG = re.compile(r"<[^>]*>")

# Citation markers, most specific first: ##0$$, [1], (ref: 1), {ref: 1}, ##1, $$
_REFERENCE_MARKERS = [
    re.compile(r"##\d+\$\$"),
    re.compile(r"\[\d+\]"),
    re.compile(r"\(ref:\s*\d+\)", re.IGNORECASE),
    re.compile(r"\{\s*ref\s*:\s*\d+\s*\}", re.IGNORECASE),
    re.compile(r"##\d+"),
    re.compile(r"\$\$"),
]

_SPACE_BEFORE_PUNCTUATION = re.compile(r"\s+([.,;:!?])")
_RUN_OF_SPACES = re.compile(r"\s{2,}")
_EXTRA_BLANK_LINES = re.compile(r"\n{3,}")


def strip_html(text: str) -> str:
    """Remove HTML tags."""
    return _HTML_TAG.sub("", text)


def clean_message_content(text: str) -> str:
    """Return message content with RAGFlow markup removed."""
    text = _THINK_BLOCK.sub("", text)
    text = strip_html(text)
    for pattern in _REFERENCE_MARKERS:
        text = pattern.sub("", text)

    text = text.strip()
    text = _SPACE_BEFORE_PUNCTUATION.sub(r"\1", text)

    # Collapse spaces within each line; line breaks are kept
    text = "\n".join(_RUN_OF_SPACES.sub(" ", line).strip() for line in text.split("\n"))

    return _EXTRA_BLANK_LINES.sub("\n\n", text)


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, marking the cut with '...'."""
    return text[:limit] + "..." if len(text) > limit else text
