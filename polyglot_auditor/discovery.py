"""Default file discovery collaborator."""

from __future__ import annotations

import fnmatch
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Set

from .errors import DiscoveryError

logger = logging.getLogger(__name__)

SKIP_DIRS: Set[str] = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs",
    "egg-info", ".polyglot-auditor", "vendor", "coverage", ".next",
}


def _matches(rel_path: str, patterns: Iterable[str]) -> bool:
    name = rel_path.rsplit("/", 1)[-1]
    return any(
        fnmatch.fnmatch(rel_path, pattern) or fnmatch.fnmatch(name, pattern)
        for pattern in patterns
    )


def discover_files(
    root: Path,
    include_patterns: Optional[List[str]] = None,
    exclude_patterns: Optional[List[str]] = None,
) -> List[Path]:
    """Walk *root* and return candidate source files, sorted.

    Patterns are ``fnmatch`` globs matched against the POSIX path relative
    to *root* and against the bare file name.

    Raises:
        DiscoveryError: if *root* is not a readable directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise DiscoveryError(f"Not a directory: {root}")

    include = include_patterns or []
    exclude = exclude_patterns or []
    found: List[Path] = []

    def _on_error(exc: OSError) -> None:
        if Path(exc.filename or "") == root:
            raise DiscoveryError(f"Cannot read {root}: {exc}") from exc
        logger.debug("Skipping unreadable directory %s: %s", exc.filename, exc)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames[:] = sorted(
            d for d in dirnames
            if d not in SKIP_DIRS and not d.endswith(".egg-info")
        )
        for filename in filenames:
            path = Path(dirpath) / filename
            rel = path.relative_to(root).as_posix()
            if include and not _matches(rel, include):
                continue
            if exclude and _matches(rel, exclude):
                continue
            found.append(path)

    found.sort()
    logger.debug("Discovered %d files under %s", len(found), root)
    return found
