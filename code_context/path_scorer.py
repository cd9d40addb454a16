"""
Path relevance heuristics.

Two variants share the keyword contribution (0.5 when a keyword appears in
the path, another 0.5 when it also appears in the file name):

- get_path_relevance_score(path, keywords): uncapped, keyword-driven.
- get_query_path_relevance_score(path, query): adds segment overlap,
  language affinity and structural hints, capped at 1.0. Used by the
  hybrid strategy.
"""

import posixpath
import re
from typing import Dict, FrozenSet, Sequence

from code_context.text_analysis import extract_keywords

KEYWORD_IN_PATH = 0.5
KEYWORD_IN_NAME = 0.5
SEGMENT_OVERLAP = 0.3
LANGUAGE_AFFINITY = 0.2
STRUCTURAL_HINT = 0.1
QUERY_SCORE_CAP = 1.0

MIN_SEGMENT_LENGTH = 3

# Extension -> query terms that signal interest in that language
LANGUAGE_TERMS: Dict[str, FrozenSet[str]] = {
    ".go": frozenset({"go", "golang"}),
    ".py": frozenset({"python", "py"}),
    ".java": frozenset({"java"}),
    ".js": frozenset({"javascript", "js", "node", "nodejs"}),
    ".jsx": frozenset({"javascript", "js", "react", "jsx"}),
    ".mjs": frozenset({"javascript", "js", "node", "nodejs"}),
    ".ts": frozenset({"typescript", "ts"}),
    ".tsx": frozenset({"typescript", "ts", "react", "tsx"}),
    ".cs": frozenset({"c#", "csharp", "dotnet", ".net"}),
    ".php": frozenset({"php"}),
}

ENTRYPOINT_MARKERS = ("main.", "index.")
LAYER_MARKERS = ("controller", "service")
API_MARKERS = ("api", "handler")

_QUERY_TERM = re.compile(r"[a-z0-9#.+]+")


def _normalize(path: str) -> str:
    return path.replace("\\", "/").lower()


def get_path_relevance_score(path: str, keywords: Sequence[str]) -> float:
    """Keyword-driven path score (uncapped)."""
    path_lower = _normalize(path)
    name_lower = posixpath.basename(path_lower)

    score = 0.0
    for keyword in keywords:
        if keyword in path_lower:
            score += KEYWORD_IN_PATH
            if keyword in name_lower:
                score += KEYWORD_IN_NAME
    return score


def _segments_overlap_query(path_lower: str, query_lower: str) -> bool:
    for segment in path_lower.split("/"):
        stem = posixpath.splitext(segment)[0]
        for part in {segment, stem}:
            if len(part) < MIN_SEGMENT_LENGTH:
                continue
            if part in query_lower or query_lower in part:
                return True
    return False


def _query_terms(query_lower: str) -> FrozenSet[str]:
    terms = set()
    for term in _QUERY_TERM.findall(query_lower):
        terms.add(term)
        terms.add(term.strip(".+"))
        terms.update(part for part in term.split(".") if part)
    return frozenset(terms)


def get_query_path_relevance_score(path: str, query: str) -> float:
    """Query-driven path score in [0, 1].

    Args:
        path: Candidate path relative to the target root
        query: Raw query text

    Returns:
        Keyword contribution plus segment overlap (0.3), language affinity
        (0.2) and structural hints (0.1 each), capped at 1.0
    """
    path_lower = _normalize(path)
    query_lower = query.lower().strip()

    score = get_path_relevance_score(path, extract_keywords(query))

    if query_lower and _segments_overlap_query(path_lower, query_lower):
        score += SEGMENT_OVERLAP

    ext = posixpath.splitext(path_lower)[1]
    language_terms = LANGUAGE_TERMS.get(ext)
    if language_terms and language_terms & _query_terms(query_lower):
        score += LANGUAGE_AFFINITY

    if any(marker in path_lower for marker in ENTRYPOINT_MARKERS):
        score += STRUCTURAL_HINT
    if any(marker in path_lower for marker in LAYER_MARKERS):
        score += STRUCTURAL_HINT
    if any(marker in path_lower for marker in API_MARKERS):
        score += STRUCTURAL_HINT

    return min(score, QUERY_SCORE_CAP)
