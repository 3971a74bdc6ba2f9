"""Extension and runtime tables for the languages the orchestrator knows."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional, Union

EXTENSION_MAP: Dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".kt": "kotlin",
    ".cs": "csharp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".c": "c",
    ".h": "c",
}

# Several languages may share one runtime.
LANGUAGE_RUNTIMES: Dict[str, str] = {
    "python": "python",
    "typescript": "ecmascript",
    "javascript": "ecmascript",
    "go": "go",
    "rust": "rust",
    "java": "java",
}


def language_for_path(path: Union[str, Path]) -> Optional[str]:
    return EXTENSION_MAP.get(Path(path).suffix.lower())


def runtime_for_language(language: str) -> str:
    return LANGUAGE_RUNTIMES.get(language, language)
