"""File content access for scorers and embedding strategies."""

import os
from itertools import islice
from typing import Iterator

from code_context.errors import FileAccessError


def get_file_size(path: str) -> int:
    """Size of `path` in bytes.

    Raises:
        FileAccessError: If the file cannot be stat'ed
    """
    try:
        return os.stat(path).st_size
    except OSError as e:
        raise FileAccessError(path, e) from e


def iter_lines(path: str, max_lines: int) -> Iterator[str]:
    """Yield up to `max_lines` lines of `path` without line terminators.

    Undecodable bytes are replaced rather than failing the read.

    Raises:
        FileAccessError: If the file cannot be opened or read
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in islice(f, max_lines):
                yield line.rstrip("\r\n")
    except OSError as e:
        raise FileAccessError(path, e) from e


def read_file_content(path: str, max_lines: int) -> str:
    """Read up to `max_lines` lines, each terminated by a newline."""
    return "".join(f"{line}\n" for line in iter_lines(path, max_lines))
