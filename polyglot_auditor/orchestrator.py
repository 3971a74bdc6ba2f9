"""Run-level coordination: discover, fan out per language, merge, cross-check."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

from .adapters.registry import AdapterRegistry
from .config import CRITICAL_CYCLE_LENGTH, DEFAULT_MAX_CONCURRENCY
from .contracts import ContractValidator
from .cross_reference import CrossReferenceBuilder
from .dependency_graph import DependencyGraphBuilder
from .discovery import discover_files
from .entities import (
    FEATURE_COMPLETED,
    FEATURE_DISABLED,
    FEATURE_FAILED,
    FEATURE_SKIPPED,
    AnalysisResult,
    CrossLanguageEntity,
    CrossReference,
    LanguageStats,
    PolyglotAnalysisResult,
)
from .errors import DiscoveryError
from .languages import language_for_path
from .models import ErrorRecord, severity_at_least
from .runtime import RuntimeManager
from .schemas import SchemaConsistencyChecker

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]

FEATURES = (
    "cross_language",
    "api_contracts",
    "schema_consistency",
    "cross_references",
    "dependency_graph",
    "index_update",
)


class IndexCollaborator(Protocol):
    def update_index(self, entries: List[CrossLanguageEntity], references: List[CrossReference]) -> None:
        ...


@dataclass
class PolyglotAnalysisOptions:
    languages: Optional[List[str]] = None
    analyzers: Optional[List[str]] = None
    config: Dict[str, Any] = field(default_factory=dict)
    min_severity: str = "suggestion"
    enable_cross_language_analysis: bool = True
    validate_api_contracts: bool = True
    check_schema_consistency: bool = True
    build_cross_references: bool = False
    generate_dependency_graph: bool = False
    update_index: bool = False
    include_patterns: List[str] = field(default_factory=list)
    exclude_patterns: List[str] = field(default_factory=list)
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    timeout: Optional[float] = None
    critical_cycle_length: int = CRITICAL_CYCLE_LENGTH
    on_progress: Optional[ProgressCallback] = None


def merge_language_results(
    results: Iterable[AnalysisResult], min_severity: str = "suggestion",
) -> PolyglotAnalysisResult:
    """Fold per-language results into one aggregate.

    Results are folded in language order, so any dispatch order gives the
    same aggregate.  Each language keeps its own violation order.
    """
    merged = PolyglotAnalysisResult()
    for result in sorted(results, key=lambda r: r.language):
        kept = [v for v in result.violations if severity_at_least(v.severity, min_severity)]
        merged.violations.extend(kept)
        merged.errors.extend(result.errors)
        merged.index_entries.extend(result.index_entries)

        stats = merged.language_stats.setdefault(result.language, LanguageStats())
        stats.files_analyzed += result.metrics.files_analyzed
        stats.violations += len(kept)
        stats.execution_time += result.metrics.execution_time
        for entity in result.index_entries:
            if entity.type == "function":
                stats.functions += 1
            elif entity.type in ("class", "schema", "struct"):
                stats.classes += 1
            elif entity.type == "interface":
                stats.interfaces += 1
            elif entity.type == "endpoint":
                stats.endpoints += 1

        if (result.metrics.files_analyzed or not result.errors) and \
                result.language not in merged.metrics.languages_analyzed:
            merged.metrics.languages_analyzed.append(result.language)

    merged.metrics.total_files = sum(s.files_analyzed for s in merged.language_stats.values())
    merged.metrics.total_violations = len(merged.violations)
    return merged


class LanguageOrchestrator:
    """Analyzes a polyglot tree with explicitly injected collaborators."""

    def __init__(
        self,
        runtime_manager: RuntimeManager,
        registry: AdapterRegistry,
        discover: Callable[..., List[Path]] = discover_files,
        index: Optional[IndexCollaborator] = None,
    ) -> None:
        self.runtime_manager = runtime_manager
        self.registry = registry
        self.discover = discover
        self.index = index
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop dispatching, kill live analyzers; finished languages still merge."""
        logger.info("Cancellation requested")
        self._cancel_event.set()
        self.runtime_manager.kill_all()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------------------------------------------
    # Main algorithm
    # ------------------------------------------------------------------

    def analyze(
        self, path: Path, options: Optional[PolyglotAnalysisOptions] = None,
    ) -> PolyglotAnalysisResult:
        options = options or PolyglotAnalysisOptions()
        started = time.perf_counter()
        self._cancel_event.clear()

        files = self._discover(Path(path), options)
        files_by_language = self.group_by_language(files)
        logger.info(
            "Discovered %d files in %d language(s) under %s",
            len(files), len(files_by_language), path,
        )

        selected, run_errors = self.select_languages(files_by_language, options.languages)
        results = self._dispatch(selected, files_by_language, options)

        result = merge_language_results(results, options.min_severity)
        result.errors = run_errors + result.errors
        result.feature_status = {name: FEATURE_DISABLED for name in FEATURES}

        entities = result.index_entries
        if options.enable_cross_language_analysis:
            self._cross_language_checks(result, entities, options)

        references: List[CrossReference] = []
        if options.build_cross_references or options.generate_dependency_graph:
            references = self._references_and_graph(result, entities, options)

        if options.update_index:
            self._update_index(result, entities, references)

        if self.cancelled:
            result.errors.append(ErrorRecord("Analysis cancelled; partial results returned", kind="cancelled"))

        result.metrics.execution_time = time.perf_counter() - started
        logger.info(
            "Analysis finished in %.2fs: %d violations, %d cross-language violations, %d errors",
            result.metrics.execution_time, len(result.violations),
            len(result.cross_language_violations), len(result.errors),
        )
        return result

    def _discover(self, root: Path, options: PolyglotAnalysisOptions) -> List[Path]:
        try:
            return list(self.discover(root, options.include_patterns, options.exclude_patterns))
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(f"File discovery failed for {root}: {exc}") from exc

    def group_by_language(self, files: Iterable[Path]) -> Dict[str, List[Path]]:
        grouped: Dict[str, List[Path]] = {}
        for file in files:
            adapter = self.registry.adapter_for(file)
            language = adapter.language if adapter is not None else language_for_path(file)
            if language is None:
                continue
            grouped.setdefault(language, []).append(file)
        return grouped

    def select_languages(
        self, files_by_language: Dict[str, List[Path]], requested: Optional[List[str]] = None,
    ) -> Tuple[List[str], List[ErrorRecord]]:
        candidates = sorted(files_by_language)
        if requested:
            wanted = {lang.lower() for lang in requested}
            skipped = wanted - set(candidates)
            if skipped:
                logger.debug("Requested languages with no files: %s", ", ".join(sorted(skipped)))
            candidates = [lang for lang in candidates if lang in wanted]

        selected: List[str] = []
        errors: List[ErrorRecord] = []
        for language in candidates:
            if self.runtime_manager.can_analyze(language):
                selected.append(language)
                continue
            reason = self.runtime_manager.unavailable_reason(language)
            logger.warning("Skipping %s: %s", language, reason)
            errors.append(ErrorRecord(
                f"No runtime available for {language}: {reason}",
                kind="runtime-unavailable",
                language=language,
            ))
        return selected, errors

    def _dispatch(
        self,
        languages: List[str],
        files_by_language: Dict[str, List[Path]],
        options: PolyglotAnalysisOptions,
    ) -> List[AnalysisResult]:
        if not languages:
            return []
        task_options: Dict[str, Any] = {"config": options.config}
        if options.analyzers is not None:
            task_options["analyzers"] = list(options.analyzers)
        if options.timeout:
            task_options["timeout"] = options.timeout

        workers = max(1, min(options.max_concurrency, len(languages)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="polyglot") as pool:
            futures = [
                pool.submit(
                    self._run_language, language, files_by_language[language],
                    task_options, options.on_progress,
                )
                for language in languages
            ]
            return [future.result() for future in futures]

    def _run_language(
        self,
        language: str,
        files: List[Path],
        task_options: Dict[str, Any],
        on_progress: Optional[ProgressCallback],
    ) -> AnalysisResult:
        if self.cancelled:
            return AnalysisResult.failed(language, "Analysis cancelled before start", kind="cancelled")
        runtime = self.runtime_manager.runtime_for_language(language)
        logger.debug("Analyzing %d %s file(s) with runtime %s", len(files), language, runtime)
        try:
            return self.runtime_manager.spawn_analyzer(
                runtime, language, files, task_options, self._cancel_event, on_progress,
            )
        except Exception as exc:
            logger.warning("%s task failed: %s", language, exc, exc_info=True)
            return AnalysisResult.failed(language, f"Analysis failed: {exc}")

    # ------------------------------------------------------------------
    # Cross-language phases
    # ------------------------------------------------------------------

    def _cross_language_checks(
        self,
        result: PolyglotAnalysisResult,
        entities: List[CrossLanguageEntity],
        options: PolyglotAnalysisOptions,
    ) -> None:
        found = []
        if options.validate_api_contracts:
            try:
                validator = ContractValidator()
                found.extend(validator.validate(entities))
                result.api_contracts = validator.summarize(entities)
                result.metrics.api_contracts_checked = len(validator.extract_api_calls(entities))
                result.feature_status["api_contracts"] = FEATURE_COMPLETED
            except Exception as exc:
                logger.warning("API contract validation failed: %s", exc, exc_info=True)
                result.errors.append(ErrorRecord(f"API contract validation failed: {exc}", kind="validation"))
                result.feature_status["api_contracts"] = FEATURE_FAILED

        if options.check_schema_consistency:
            try:
                checker = SchemaConsistencyChecker(
                    strict_type_checking=options.config.get("strict_type_checking", True),
                    allow_additional_fields=options.config.get("allow_additional_fields", True),
                )
                found.extend(checker.validate(entities))
                result.feature_status["schema_consistency"] = FEATURE_COMPLETED
            except Exception as exc:
                logger.warning("Schema consistency check failed: %s", exc, exc_info=True)
                result.errors.append(ErrorRecord(f"Schema consistency check failed: {exc}", kind="validation"))
                result.feature_status["schema_consistency"] = FEATURE_FAILED

        result.cross_language_violations = [
            v for v in found if severity_at_least(v.severity, options.min_severity)
        ]
        result.feature_status["cross_language"] = FEATURE_COMPLETED

    def _references_and_graph(
        self,
        result: PolyglotAnalysisResult,
        entities: List[CrossLanguageEntity],
        options: PolyglotAnalysisOptions,
    ) -> List[CrossReference]:
        try:
            references = CrossReferenceBuilder().build(entities)
        except Exception as exc:
            logger.warning("Cross-reference building failed: %s", exc, exc_info=True)
            result.errors.append(ErrorRecord(f"Cross-reference building failed: {exc}", kind="analysis"))
            if options.build_cross_references:
                result.feature_status["cross_references"] = FEATURE_FAILED
            if options.generate_dependency_graph:
                result.feature_status["dependency_graph"] = FEATURE_SKIPPED
            return []

        result.metrics.cross_language_references = sum(1 for r in references if r.is_cross_language)
        if options.build_cross_references:
            result.cross_references = references
            result.feature_status["cross_references"] = FEATURE_COMPLETED

        if options.generate_dependency_graph:
            try:
                builder = DependencyGraphBuilder(critical_cycle_length=options.critical_cycle_length)
                result.dependency_graph = builder.build(entities, references)
                result.feature_status["dependency_graph"] = FEATURE_COMPLETED
            except Exception as exc:
                logger.warning("Dependency graph generation failed: %s", exc, exc_info=True)
                result.errors.append(ErrorRecord(f"Dependency graph generation failed: {exc}", kind="analysis"))
                result.feature_status["dependency_graph"] = FEATURE_FAILED
        return references

    def _update_index(
        self,
        result: PolyglotAnalysisResult,
        entities: List[CrossLanguageEntity],
        references: List[CrossReference],
    ) -> None:
        if self.index is None:
            logger.warning("Index update requested but no index is configured")
            result.feature_status["index_update"] = FEATURE_SKIPPED
            return
        try:
            self.index.update_index(entities, references)
            result.feature_status["index_update"] = FEATURE_COMPLETED
        except Exception as exc:
            logger.warning("Index update failed: %s", exc, exc_info=True)
            result.errors.append(ErrorRecord(f"Index update failed: {exc}", kind="index"))
            result.feature_status["index_update"] = FEATURE_FAILED
