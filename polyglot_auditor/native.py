"""In-process analysis for languages with a registered adapter."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .adapters.registry import AdapterRegistry
from .entities import AnalysisMetrics, AnalysisResult
from .extractor import EntityExtractor
from .models import ErrorRecord
from .passes import PassRegistry

logger = logging.getLogger(__name__)


def _dedupe_errors(errors: List[ErrorRecord]) -> List[ErrorRecord]:
    """Every pass reparses, so a broken file reports once per pass."""
    seen = set()
    unique = []
    for error in errors:
        key = (error.file, error.kind, error.error)
        if key not in seen:
            seen.add(key)
            unique.append(error)
    return unique


class NativeAnalyzer:
    """Runs the selected passes, then entity extraction, over one language's files."""

    def __init__(self, registry: AdapterRegistry, passes: PassRegistry) -> None:
        self.registry = registry
        self.passes = passes

    def analyze(
        self,
        language: str,
        files: Sequence[Union[str, Path]],
        options: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
    ) -> AnalysisResult:
        options = options or {}
        started = time.perf_counter()
        result = AnalysisResult(language=language)
        errors: List[ErrorRecord] = []

        def _cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        progress = None
        if on_progress is not None:
            def progress(current: int, total: int) -> None:
                on_progress(language, current, total)

        for analysis_pass in self.passes.build(self.registry, options.get("analyzers")):
            if _cancelled():
                break
            pass_result = analysis_pass.analyze(
                files, options.get("config", {}), options, on_progress=progress,
            )
            result.violations.extend(pass_result.violations)
            errors.extend(pass_result.errors)

        files_analyzed = 0
        if not _cancelled() and options.get("extract_entities", True):
            entities, extract_errors, files_analyzed = EntityExtractor(self.registry).extract(files)
            result.index_entries.extend(entities)
            errors.extend(extract_errors)

        if _cancelled():
            errors.append(ErrorRecord("Analysis cancelled", kind="cancelled", language=language))

        result.errors = _dedupe_errors(errors)
        result.metrics = AnalysisMetrics(
            files_analyzed=files_analyzed,
            execution_time=time.perf_counter() - started,
        )
        logger.info(
            "%s: %d files, %d violations, %d entities",
            language, files_analyzed, len(result.violations), len(result.index_entries),
        )
        return result
