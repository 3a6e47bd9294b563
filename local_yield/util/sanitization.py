"""Sanitisation helpers.

Simple utilities to strip HTML tags from user-supplied text and trim
whitespace. Review comments, order notes and messages pass through
these before they are stored so that nothing rendered later can carry
markup.
"""
import re
from typing import Optional

TAG_RE = re.compile(r"<[^>]+>")


def strip_tags(text: str) -> str:
    """Remove HTML tags from the given string.

    Parameters
    ----------
    text: str
        The input string that may contain HTML tags.

    Returns
    -------
    str
        The cleaned string with tags removed and whitespace trimmed.
    """
    if not text:
        return ""
    no_tags = TAG_RE.sub("", text)
    return no_tags.strip()


def clean_optional(text: Optional[str]) -> Optional[str]:
    """Strip tags from optional free text, returning ``None`` when empty."""
    if text is None:
        return None
    cleaned = strip_tags(str(text))
    return cleaned or None
