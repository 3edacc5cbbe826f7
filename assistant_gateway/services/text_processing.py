"""
Text processing for prompts and labels: cleaning extracted text and truncating titles.

Extracted attachment text is noisy (PDF spacing, duplicate lines, mixed unicode);
cleaning keeps the prompt compact. Titles are cut on word boundaries.
"""

import re
import unicodedata

from assistant_gateway.core.config import TITLE_MAX_LENGTH

ELLIPSIS = "…"
DEFAULT_TITLE = "New Chat"


def clean_text(text: str) -> str:
    """
    Normalize and clean raw extracted text.

    NFKC-normalizes, strips each line, collapses consecutive duplicate lines and
    keeps at most one blank line between paragraphs.
    """
    if not text or not text.strip():
        return ""
    text = unicodedata.normalize("NFKC", text)
    lines = [line.strip() for line in text.splitlines()]
    deduped: list[str] = []
    for line in lines:
        if deduped and deduped[-1] == line:
            continue
        deduped.append(line)
    result: list[str] = []
    for line in deduped:
        if line == "":
            if result and result[-1] != "":
                result.append("")
        else:
            result.append(line)
    return "\n".join(result).strip()


def truncate_text(text: str, max_chars: int) -> tuple[str, bool]:
    """Cut text to max_chars on a line or word boundary. Returns (text, was_truncated)."""
    if len(text) <= max_chars:
        return text, False
    cut = text[:max_chars]
    boundary = max(cut.rfind("\n"), cut.rfind(" "))
    if boundary > max_chars // 2:
        cut = cut[:boundary]
    return cut.rstrip(), True


def truncate_title(text: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """
    Shorten text to a title of at most max_length characters.

    Whitespace is collapsed. When the text is too long the cut falls on the last
    word boundary that leaves room for the ellipsis; a single word longer than
    the limit is cut hard. The result never exceeds max_length.
    """
    if max_length < 1:
        return ""
    cleaned = re.sub(r"\s+", " ", text or "").strip()
    if len(cleaned) <= max_length:
        return cleaned
    room = max_length - len(ELLIPSIS)
    head = cleaned[: room + 1]
    if head[-1] == " ":
        head = head[:-1]
    else:
        head = head[:room]
        space = head.rfind(" ")
        if space > 0:
            head = head[:space]
    return head.rstrip() + ELLIPSIS


def local_title(text: str, max_length: int = TITLE_MAX_LENGTH) -> str:
    """Title from the user's own words: markdown noise removed, first letter capitalized."""
    cleaned = re.sub(r"[#*_`>\-]", " ", text or "")
    title = truncate_title(cleaned, max_length)
    if not title:
        return DEFAULT_TITLE
    return title[0].upper() + title[1:]
