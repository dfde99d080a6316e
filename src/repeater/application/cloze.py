"""Locating and masking bracketed deletions in cloze text."""

from repeater.domain.constants import (
    CLOZE_CLOSE,
    CLOZE_MASK_CHAR,
    CLOZE_MIN_MASK,
    CLOZE_OPEN,
)
from repeater.domain.models import ClozeContent, ClozeRange


def find_cloze_ranges(text: str) -> list[ClozeRange]:
    """
    Find every bracketed span in order.

    The first '[' opens a span and the next ']' closes it; ranges include
    both brackets. A ']' with no open span and a trailing unclosed '[' are ignored.
    """
    ranges: list[ClozeRange] = []
    start: int | None = None

    for i, ch in enumerate(text):
        if ch == CLOZE_OPEN and start is None:
            start = i
        elif ch == CLOZE_CLOSE and start is not None:
            ranges.append(ClozeRange(start, i + 1))
            start = None

    return ranges


def cloze_content(text: str) -> ClozeContent:
    """
    Build cloze content hiding the first bracketed span.

    An empty '[]' does not hide anything, so it counts as missing.
    """
    ranges = find_cloze_ranges(text)
    if not ranges or ranges[0].end - ranges[0].start <= 2:
        return ClozeContent(text=text, hidden_range=None)
    return ClozeContent(text=text, hidden_range=ranges[0])


def mask_cloze_text(text: str, hidden: ClozeRange) -> str:
    """
    Replace the hidden span's inner text with underscores, keeping the brackets.

    The mask has one underscore per hidden character, never fewer than three.
    A range that does not fit the text leaves it unchanged.
    """
    if hidden.end > len(text):
        return text

    core = text[hidden.start : hidden.end].lstrip(CLOZE_OPEN).rstrip(CLOZE_CLOSE)
    placeholder = CLOZE_MASK_CHAR * max(len(core), CLOZE_MIN_MASK)
    return f"{text[: hidden.start]}{CLOZE_OPEN}{placeholder}{CLOZE_CLOSE}{text[hidden.end :]}"
