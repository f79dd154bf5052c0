"""Text helpers: query normalization, search terms, bulk-content detection."""

import re
from typing import List


_WHITESPACE_RE = re.compile(r"\s+")
_URL_RE = re.compile(r"https?://")
_TERM_SPLIT_RE = re.compile(r"[\s,.!?:;\-()\[\]\"']+")

_CHAR_REPLACEMENTS = {
    "\u00a0": " ",
    "\t": " ",
    "\r": " ",
    "\n": " ",
    "\u200b": "",
    "\u200c": "",
    "\u200d": "",
    "\ufeff": "",
    "\u2013": "-",
    "\u2014": "-",
    "\u2212": "-",
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2026": "...",
}

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "was", "were", "with", "what", "who", "whom",
    "when", "where", "why", "how", "which", "that", "this", "these", "those",
    "did", "does", "has", "have", "had", "about", "from", "into", "there",
    "their", "they", "them", "you", "your", "our", "his", "her", "its",
    "can", "could", "would", "should", "will", "been", "any", "all", "not",
})

BULK_CONTENT_MIN_LENGTH = 800
BULK_CONTENT_MARKERS = ("BREAKING", "Subscribe", "Source:", "Read more", "\u26a1", "\u2757", "\U0001f534")


def normalize_query(text: str) -> str:
    """
    Normalize a user question before it is searched.

    Replaces control whitespace with spaces, strips zero-width characters,
    folds typographic dashes/quotes into ASCII and collapses whitespace.

    Args:
        text: Raw question text

    Returns:
        Normalized text (empty string if nothing searchable remains)
    """
    if not text or not text.strip():
        return ""

    normalized = "".join(_CHAR_REPLACEMENTS.get(ch, ch) for ch in text)
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def extract_search_terms(query: str, min_length: int = 3) -> List[str]:
    """
    Extract distinct, lowercased search terms from a query.

    Args:
        query: Query text
        min_length: Minimum term length

    Returns:
        Terms in first-seen order, stop words removed
    """
    terms: List[str] = []
    for word in _TERM_SPLIT_RE.split(query.lower()):
        if len(word) >= min_length and word not in STOP_WORDS and word not in terms:
            terms.append(word)
    return terms


def is_bulk_content(text: str) -> bool:
    """
    Detect long pasted external content (news reposts, link dumps).

    Two or more indicators are required: length over 800 chars, two or
    more URLs, a news marker, or a leading emoji.
    """
    if not text:
        return False

    indicators = 0

    if len(text) > BULK_CONTENT_MIN_LENGTH:
        indicators += 1

    if len(_URL_RE.findall(text)) >= 2:
        indicators += 1

    lowered = text.lower()
    if any(marker.lower() in lowered for marker in BULK_CONTENT_MARKERS):
        indicators += 1

    if ord(text[0]) >= 0x1F000:
        indicators += 1

    return indicators >= 2
