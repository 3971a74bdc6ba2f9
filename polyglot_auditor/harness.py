"""Analysis harness: runs one pass over a file list with per-file isolation."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .adapters.base import LanguageAdapter
from .adapters.registry import AdapterRegistry
from .models import AST, ErrorRecord, PassResult, SourceLocation, Violation

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class AnalysisPass(ABC):
    """Base class for rule passes that consume the normalized AST.

    Subclasses implement :meth:`analyze_ast`; :meth:`analyze` drives
    reading, parsing and error isolation and never raises.
    """

    name: str = ""
    description: str = ""

    def __init__(self, registry: AdapterRegistry) -> None:
        self.registry = registry

    def group_files(
        self, files: Sequence[Union[str, Path]],
    ) -> List[Tuple[LanguageAdapter, List[Path]]]:
        """Group *files* by adapter in one pass, keeping first-seen order."""
        groups: Dict[str, Tuple[LanguageAdapter, List[Path]]] = {}
        for file in files:
            adapter = self.registry.adapter_for(file)
            if adapter is None:
                logger.debug("No adapter claims %s; skipped by %s", file, self.name)
                continue
            groups.setdefault(adapter.language, (adapter, []))[1].append(Path(file))
        return list(groups.values())

    def analyze(
        self,
        files: Sequence[Union[str, Path]],
        config: Optional[Dict[str, Any]] = None,
        options: Optional[Dict[str, Any]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> PassResult:
        started = time.perf_counter()
        config = config or {}
        result = PassResult()
        groups = self.group_files(files)
        total = sum(len(paths) for _, paths in groups)
        current = 0

        for adapter, paths in groups:
            for path in paths:
                current += 1
                self._analyze_file(adapter, path, config, result)
                self._report_progress(on_progress, current, total)

        result.execution_time = time.perf_counter() - started
        logger.debug(
            "%s: %d files, %d violations, %d errors in %.3fs",
            self.name, result.files_processed, len(result.violations),
            len(result.errors), result.execution_time,
        )
        return result

    def _analyze_file(
        self,
        adapter: LanguageAdapter,
        path: Path,
        config: Dict[str, Any],
        result: PassResult,
    ) -> None:
        try:
            content = path.read_bytes()
        except OSError as exc:
            result.errors.append(ErrorRecord(
                f"Read error: {exc}", kind="read", file=str(path), language=adapter.language,
            ))
            return

        try:
            ast = adapter.parse(path, content)
            if ast.errors:
                shown = "; ".join(str(d) for d in ast.errors[:3])
                more = f" (+{len(ast.errors) - 3} more)" if len(ast.errors) > 3 else ""
                result.errors.append(ErrorRecord(
                    f"Parse error: {shown}{more}", kind="parse",
                    file=str(path), language=adapter.language,
                ))
            result.violations.extend(self.analyze_ast(ast, adapter, config))
            result.files_processed += 1
        except Exception as exc:
            logger.debug("%s failed on %s", self.name, path, exc_info=True)
            result.errors.append(ErrorRecord(
                f"Analysis error: {exc}", kind="analysis", file=str(path), language=adapter.language,
            ))

    @staticmethod
    def _report_progress(on_progress: Optional[ProgressCallback], current: int, total: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(current, total)
        except Exception as exc:
            logger.debug("Progress callback failed: %s", exc)

    @abstractmethod
    def analyze_ast(
        self, ast: AST, adapter: LanguageAdapter, config: Dict[str, Any],
    ) -> List[Violation]:
        ...

    def create_violation(
        self,
        file: str,
        location: SourceLocation,
        message: str,
        severity: str,
        rule: str,
        fix: Optional[str] = None,
    ) -> Violation:
        return Violation(
            file=file,
            line=location.start.line,
            column=location.start.col,
            severity=severity,
            message=message,
            rule=rule,
            analyzer=self.name,
            fix=fix,
        )
