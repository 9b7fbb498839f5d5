"""
Deterministic formatting of generated word sections into one document.

A word's ``meaning`` is a markdown-like document made of fixed sections,
each introduced by a heading line that is unique to that section::

    ### 🎯 词性与基本含义
    <basic meaning>

    ### 🌟 详细释义
    <detailed meaning>
    ...
    ### 🎬 记忆金句
    "<word>" - ...

Sections always appear in CANONICAL_ORDER.  During enrichment the document
only ever grows: ``append_section`` adds one section at the end, and the
final ``assemble_full`` produces the same layout from scratch.

Public API
----------
assemble_initial(fast_text)                  -> one-section document
append_section(document, section_key, text)  -> document + one section
assemble_full(word, sections)                -> complete document
parse_sections(document)                     -> {section_key: text | None}
extract_basic_meaning(document)              -> fast-section text
"""
from __future__ import annotations

import enum
import re
from typing import Dict, List, Mapping, Optional, Union


class SectionKey(str, enum.Enum):
    """Stable section identifiers, also used as progress tags in ``scenarios``."""

    BASIC_MEANING = "basicMeaning"
    DETAILED_MEANING = "detailedMeaning"
    USAGE_EXAMPLES = "usageExamples"
    SYNONYMS = "synonyms"
    COLLOCATIONS = "collocations"


CANONICAL_ORDER: tuple = (
    SectionKey.BASIC_MEANING,
    SectionKey.DETAILED_MEANING,
    SectionKey.USAGE_EXAMPLES,
    SectionKey.SYNONYMS,
    SectionKey.COLLOCATIONS,
)

# Sections produced by the queued deep enrichment (everything after the fast path)
DEEP_SECTIONS: tuple = CANONICAL_ORDER[1:]

SECTION_HEADINGS: Dict[SectionKey, str] = {
    SectionKey.BASIC_MEANING: "### 🎯 词性与基本含义",
    SectionKey.DETAILED_MEANING: "### 🌟 详细释义",
    SectionKey.USAGE_EXAMPLES: "### ✨ 使用场景与例句",
    SectionKey.SYNONYMS: "### 🔄 近义词对比",
    SectionKey.COLLOCATIONS: "### 🎪 常用搭配表达",
}

MNEMONIC_HEADING = "### 🎬 记忆金句"
_MNEMONIC_TEMPLATE = '"{word}" - 记住这个单词的关键是理解其核心含义和使用场景'

# Terminal markers stored in ``scenarios``
FAST_PATH_MARKER = "basic-meaning"
COMPLETED_MARKERS: List[str] = ["multi-request", "completed"]
FAILED_MARKER = "processing-failed"

SectionInput = Union[SectionKey, str]


def _heading_pattern(heading: str) -> "re.Pattern[str]":
    # "### 🌟 详细释义" -> tolerate extra/missing spaces around the emoji
    hashes, _, title = heading.partition(" ")
    parts = [re.escape(p) for p in title.split()]
    return re.compile(
        r"^" + re.escape(hashes) + r"[ \t]*" + r"[ \t]*".join(parts) + r"[ \t]*$",
        re.MULTILINE,
    )


_SECTION_PATTERNS: Dict[SectionKey, "re.Pattern[str]"] = {
    key: _heading_pattern(heading) for key, heading in SECTION_HEADINGS.items()
}
_MNEMONIC_PATTERN = _heading_pattern(MNEMONIC_HEADING)


def _as_key(section_key: SectionInput) -> SectionKey:
    return section_key if isinstance(section_key, SectionKey) else SectionKey(section_key)


def _demote_headings(text: str) -> str:
    # Body lines that read like a known heading would split the section on re-parse
    for pattern in (*_SECTION_PATTERNS.values(), _MNEMONIC_PATTERN):
        text = pattern.sub(lambda m: "#" + m.group(0), text)
    return text


def build_section(section_key: SectionInput, text: str) -> str:
    """
    Return one section: its heading line followed by *text*.

    Lines of *text* that match a known heading are demoted to ``####`` so the
    stored document always parses back into the same sections.
    """
    key = _as_key(section_key)
    return f"{SECTION_HEADINGS[key]}\n{_demote_headings(text.strip())}"


def assemble_initial(fast_text: str) -> str:
    """Return the one-section document stored right after the fast path."""
    return build_section(SectionKey.BASIC_MEANING, fast_text)


def append_section(document: str, section_key: SectionInput, text: str) -> str:
    """
    Return *document* followed by a blank line and the given section.

    Not idempotent: appending the same section twice duplicates it.  The
    caller must append each section at most once per word.
    """
    section = build_section(section_key, text)
    if not document.strip():
        return section
    return f"{document.rstrip()}\n\n{section}"


def mnemonic_line(word: str) -> str:
    return f"{MNEMONIC_HEADING}\n{_MNEMONIC_TEMPLATE.format(word=word)}"


def assemble_full(word: str, sections: Mapping[SectionInput, str]) -> str:
    """
    Build the complete document for *word*.

    *sections* may be given in any order (e.g. completion order); headings
    are always emitted in CANONICAL_ORDER, followed by the mnemonic line.

    Raises:
        ValueError: If any canonical section is missing.
    """
    by_key: Dict[SectionKey, str] = {_as_key(k): v for k, v in sections.items()}
    missing = [key.value for key in CANONICAL_ORDER if key not in by_key]
    if missing:
        raise ValueError(f"Cannot assemble '{word}': missing sections {missing}")

    parts = [build_section(key, by_key[key]) for key in CANONICAL_ORDER]
    parts.append(mnemonic_line(word))
    return "\n\n".join(parts)


def parse_sections(document: Optional[str]) -> Dict[SectionKey, Optional[str]]:
    """
    Best-effort split of a stored document back into its sections.

    Only the known heading lines are treated as boundaries, so headings the
    model wrote inside a section body do not break the split.  A section
    that is absent (or whose heading appears without a body) maps to None.
    Manually edited documents may yield no sections at all.
    """
    result: Dict[SectionKey, Optional[str]] = {key: None for key in CANONICAL_ORDER}
    if not document:
        return result

    # (start_of_heading, end_of_heading, key) ; key None = mnemonic
    boundaries = []
    for key, pattern in _SECTION_PATTERNS.items():
        match = pattern.search(document)
        if match:
            boundaries.append((match.start(), match.end(), key))
    for match in _MNEMONIC_PATTERN.finditer(document):
        boundaries.append((match.start(), match.end(), None))
    # Later duplicates of a heading still end the preceding section
    for key, pattern in _SECTION_PATTERNS.items():
        for match in list(pattern.finditer(document))[1:]:
            boundaries.append((match.start(), match.end(), None))

    boundaries.sort(key=lambda b: b[0])
    for index, (_start, end, key) in enumerate(boundaries):
        if key is None:
            continue
        next_start = boundaries[index + 1][0] if index + 1 < len(boundaries) else len(document)
        body = document[end:next_start].strip()
        result[key] = body or None
    return result


def completed_sections(document: Optional[str]) -> List[SectionKey]:
    """Sections present in *document*, in canonical order."""
    parsed = parse_sections(document)
    return [key for key in CANONICAL_ORDER if parsed[key] is not None]


def extract_basic_meaning(document: Optional[str]) -> str:
    """
    Return the fast-section text of *document*.

    Falls back to everything before the first ``###`` heading for documents
    that were written without section headings.
    """
    if not document:
        return ""
    basic = parse_sections(document)[SectionKey.BASIC_MEANING]
    if basic is not None:
        return basic
    return document.split("\n\n###")[0].strip()
