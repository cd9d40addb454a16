"""
Lexical relevance scoring.

Each line containing a keyword adds ``1 / (0.1 + line_number / 100)`` to
the file's score, so a match on line 1 is worth about 9.09, on line 100
about 0.91 and on line 1000 about 0.099. Every keyword occurrence-bearing
line contributes; there is no per-keyword cap.
"""

from typing import Sequence

from code_context.file_reader import iter_lines

DEFAULT_LINE_CAP = 1000


def line_weight(line_number: int) -> float:
    """Weight of a match on a 1-based line number."""
    return 1.0 / (0.1 + line_number / 100.0)


def score_text_lines(lines, keywords: Sequence[str]) -> float:
    """Score an iterable of lines (already capped) against keywords."""
    score = 0.0
    for line_number, line in enumerate(lines, start=1):
        line = line.lower()
        for keyword in keywords:
            if keyword in line:
                score += line_weight(line_number)
    return score


def score_file(path: str, keywords: Sequence[str], line_cap: int = DEFAULT_LINE_CAP) -> float:
    """Score a file by keyword occurrences weighted by line position.

    Args:
        path: File to scan
        keywords: Lowercase keywords
        line_cap: Lines beyond this are never scored

    Returns:
        Accumulated score (0.0 when nothing matches)

    Raises:
        FileAccessError: If the file cannot be opened or read
    """
    return score_text_lines(iter_lines(path, line_cap), keywords)
