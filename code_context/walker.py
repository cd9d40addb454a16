"""
Candidate file supplier.

Walks a target directory and returns the relative paths of files worth
ranking. Hidden directories, dependency and build folders, caches, and
binary or generated files are excluded by default; callers can add their
own fnmatch-style patterns.
"""

import fnmatch
import logging
import os
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)

# Directory names pruned from the walk
DEFAULT_EXCLUDED_DIRS = frozenset({
    "node_modules", "vendor", "dist", "build", "coverage", "__pycache__",
    "__mocks__", "venv", "env", "target", "bin", "obj", "htmlcov",
})

# Patterns matched against the relative path and the file name
DEFAULT_EXCLUDE_PATTERNS = [
    # Python packaging and bytecode
    "*.egg-info",
    "*.pyc",
    "*.pyo",
    # JS/TS test files
    "*.spec.ts",
    "*.test.ts",
    "*.spec.js",
    "*.test.js",
    # Data files
    "*.json",
    "*.yaml",
    "*.yml",
    "*.xml",
    "*.csv",
    "*.toml",
    "*.ini",
    # Minified and source maps
    "*.min.css",
    "*.min.js",
    "*.map",
    # ASP.NET static assets
    "wwwroot/lib/*",
    "wwwroot/css/*",
    "wwwroot/js/*",
    # Logs, locks, binaries
    "*.log",
    "*.lock",
    "*.bin",
    "*.exe",
    "*.dll",
    "*.so",
    "*.dylib",
    # Media and archives
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.svg",
    "*.ico",
    "*.pdf",
    "*.zip",
    "*.tar.gz",
    "*.gz",
    "*.rar",
    "*.7z",
    # Environment files
    ".env",
]


def _matches(rel_path: str, patterns: Sequence[str]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    for pattern in patterns:
        if fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern):
            return True
    return False


def _is_excluded_dir(name: str, rel_path: str, patterns: Sequence[str]) -> bool:
    if name.startswith("."):
        return True
    if name in DEFAULT_EXCLUDED_DIRS:
        return True
    return _matches(rel_path, patterns)


def scan_candidates(root: str, exclude_patterns: Optional[Sequence[str]] = None) -> List[str]:
    """
    Collect candidate files under `root`.

    Args:
        root: Directory to walk
        exclude_patterns: Extra fnmatch patterns (relative path or file name)

    Returns:
        Sorted relative paths using forward slashes
    """
    patterns = list(DEFAULT_EXCLUDE_PATTERNS)
    if exclude_patterns:
        patterns.extend(exclude_patterns)

    def on_error(error: OSError) -> None:
        logger.warning(f"Error walking {getattr(error, 'filename', root)}: {error}")

    candidates = []
    for current, dirs, files in os.walk(root, onerror=on_error):
        rel_dir = os.path.relpath(current, root).replace(os.sep, "/")
        rel_dir = "" if rel_dir == "." else f"{rel_dir}/"

        # Filter out excluded directories in-place
        dirs[:] = [d for d in dirs if not _is_excluded_dir(d, f"{rel_dir}{d}", patterns)]

        for name in files:
            rel_path = f"{rel_dir}{name}"
            if _matches(rel_path, patterns):
                continue
            candidates.append(rel_path)

    candidates.sort()
    logger.debug(f"Found {len(candidates)} candidate files under {root}")
    return candidates
