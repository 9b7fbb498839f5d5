"""
Common utility functions and helpers.
"""
from typing import Optional
import re
import unicodedata


def normalize_word(word: str) -> str:
    """
    Normalize a word for storage and lookup.

    Args:
        word: Raw word as typed by the user

    Returns:
        Trimmed, lowercased word
    """
    return word.strip().lower()


def normalize_text(text: str) -> str:
    """
    Normalize free text for display in a single line.

    Args:
        text: Raw text string

    Returns:
        Normalized text
    """
    # Normalize unicode (full-width punctuation etc.)
    text = unicodedata.normalize('NFKC', text)
    # Remove extra whitespace
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def strip_markdown(text: str) -> str:
    """Remove the markdown decoration LLMs like to add (headings, bold, bullets)."""
    text = re.sub(r'^\s*#{1,6}\s*', '', text, flags=re.MULTILINE)
    text = re.sub(r'\*\*|__|`', '', text)
    text = re.sub(r'^\s*(?:[-*+]|\d+[.)])\s+', '', text, flags=re.MULTILINE)
    return text


def first_meaningful_line(text: str, max_length: int = 100) -> Optional[str]:
    """
    Return the first non-empty line of *text* without markdown, truncated.

    Used to derive a short one-line gloss from a generated paragraph.
    Returns None when the text has no usable line.
    """
    for line in strip_markdown(text).splitlines():
        line = normalize_text(line)
        if line:
            return truncate_text(line, max_length)
    return None


def truncate_text(text: str, max_length: int) -> str:
    """
    Truncate *text* to *max_length* characters, adding an ellipsis if cut.

    Args:
        text: Text to truncate
        max_length: Maximum length of the result

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[: max(0, max_length - 1)].rstrip() + "…"
