"""
Query text analysis: keyword extraction and query-derived naming.

Keywords are lowercase tokens of three or more characters with
punctuation stripped and common stop words removed. Order is preserved
and duplicates are kept, so a repeated query term weighs more.
"""

import os
import re
import unicodedata
from typing import FrozenSet, List

# Articles, conjunctions and interrogatives that carry no topical signal
STOP_WORDS: FrozenSet[str] = frozenset({
    "the", "and", "for", "this", "that",
    "are", "with", "what", "from", "how",
    "where", "when", "who", "why", "which",
})

MIN_KEYWORD_LENGTH = 3
FALLBACK_KEYWORD = "query"
FALLBACK_BASE_NAME = "project"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")


def _strip_punctuation(token: str) -> str:
    """Remove every Unicode punctuation character (categories P*)."""
    return "".join(ch for ch in token if not unicodedata.category(ch).startswith("P"))


def extract_keywords(query: str) -> List[str]:
    """Extract meaningful keywords from a query.

    Args:
        query: Natural-language query

    Returns:
        Keywords in query order, possibly empty

    Example:
        >>> extract_keywords("How does the JSON parser handle errors?")
        ['does', 'json', 'parser', 'handle', 'errors']
    """
    keywords = []
    for word in query.lower().split():
        word = _strip_punctuation(word)
        if len(word) < MIN_KEYWORD_LENGTH:
            continue
        if word in STOP_WORDS:
            continue
        keywords.append(word)
    return keywords


def extract_query_keyword(query: str) -> str:
    """Pick the single longest keyword (first wins on ties) for naming."""
    keywords = extract_keywords(query)
    if not keywords:
        return FALLBACK_KEYWORD

    longest = keywords[0]
    for keyword in keywords:
        if len(keyword) > len(longest):
            longest = keyword
    return longest


def _clean_filename_part(part: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("", part.replace(" ", "_"))


def default_summary_filename(target_path: str, query: str) -> str:
    """Default report filename: ``<target base name>_<query keyword>_summary.md``.

    Args:
        target_path: Directory being summarised
        query: The user's query

    Returns:
        Filesystem-safe filename
    """
    invalid = {"", ".", "..", "/", "\\"}

    normalized = os.path.normpath(target_path) if target_path else "."
    base_name = os.path.basename(normalized)
    if base_name in invalid:
        base_name = os.path.basename(os.path.dirname(normalized))
        if base_name in invalid:
            base_name = FALLBACK_BASE_NAME

    clean_base = _clean_filename_part(base_name) or FALLBACK_BASE_NAME
    clean_keyword = _clean_filename_part(extract_query_keyword(query)) or FALLBACK_KEYWORD
    return f"{clean_base}_{clean_keyword}_summary.md"
