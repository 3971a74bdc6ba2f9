"""Runtime detection and analyzer launching.

Native runtimes are the in-process tree-sitter adapters.  External runtimes
are companion executables reached through the JSON protocol in
:mod:`polyglot_auditor.protocol`; they are discovered by layered lookup
(custom path, ``PATH`` + symlink resolution, well-known locations) and
verified with a bounded version probe.
"""

from __future__ import annotations

import errno
import logging
import os
import re
import shutil
import subprocess
import threading
import time
from dataclasses import asdict, dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple, Union

from .adapters.registry import AdapterRegistry
from .config import ANALYSIS_TIMEOUT, BASE_DIR, PROBE_TIMEOUT, runtime_disable_env, runtime_path_env
from .config_manager import load_runtime_settings
from .entities import AnalysisResult
from .errors import (
    AnalyzerError,
    AnalyzerProtocolError,
    AnalyzerSpawnError,
    AnalyzerTimeoutError,
    RuntimeUnavailableError,
)
from .languages import LANGUAGE_RUNTIMES
from .native import NativeAnalyzer
from .passes import PassRegistry, build_default_passes
from .protocol import build_request, parse_response, to_analysis_result

logger = logging.getLogger(__name__)

# Spawn failures worth exactly one retry.
_TRANSIENT_ERRNOS = {errno.EAGAIN, errno.ENOMEM, errno.EMFILE, errno.ENFILE, errno.ETXTBSY}

NATIVE_RUNTIMES: Dict[str, List[str]] = {
    "python": ["python"],
    "ecmascript": ["typescript", "javascript"],
}


@dataclass
class RuntimeSpec:
    """How to find, verify and invoke one external analyzer runtime."""
    name: str
    languages: List[str]
    executable: str
    version_args: List[str] = field(default_factory=lambda: ["--version"])
    version_pattern: str = r"(\d+\.\d+(?:\.\d+)?)"
    well_known_paths: List[str] = field(default_factory=list)
    # ``{analyzer}`` is replaced by the configured analyzer location.
    analyze_args: List[str] = field(default_factory=list)
    default_analyzer: Optional[str] = None
    min_version: Optional[str] = None
    install_hint: str = ""


@dataclass
class RuntimeInfo:
    name: str
    languages: List[str]
    native: bool = False
    available: bool = False
    enabled: bool = True
    compatible: bool = True
    path: Optional[str] = None
    version: Optional[str] = None
    source: Optional[str] = None
    error: Optional[str] = None
    analyzer: Optional[str] = None
    analyzer_ready: bool = True

    @property
    def usable(self) -> bool:
        return self.available and self.enabled and self.compatible and self.analyzer_ready


def default_runtime_specs() -> List[RuntimeSpec]:
    return [
        RuntimeSpec(
            name="go",
            languages=["go"],
            executable="go",
            version_args=["version"],
            version_pattern=r"go(\d+\.\d+(?:\.\d+)?)",
            well_known_paths=[
                "/usr/local/go/bin/go",
                "/usr/local/bin/go",
                "/opt/homebrew/bin/go",
                "/usr/bin/go",
            ],
            analyze_args=["run", "{analyzer}"],
            default_analyzer=str(BASE_DIR / "analyzers" / "go"),
            min_version="1.18",
            install_hint="Install Go from https://go.dev/dl/ or set POLYGLOT_AUDITOR_GO_PATH",
        ),
    ]


def compare_versions(left: str, right: str) -> int:
    """Compare dotted versions, ignoring ``v``/``go`` prefixes and suffixes."""
    def _parts(version: str) -> Tuple[int, ...]:
        cleaned = re.sub(r"^(v|go)", "", version.strip())
        parts = []
        for chunk in cleaned.split("."):
            digits = re.match(r"\d+", chunk)
            parts.append(int(digits.group()) if digits else 0)
        return tuple(parts)

    a, b = _parts(left), _parts(right)
    width = max(len(a), len(b))
    a += (0,) * (width - len(a))
    b += (0,) * (width - len(b))
    return (a > b) - (a < b)


def _is_transient(exc: OSError) -> bool:
    return exc.errno in _TRANSIENT_ERRNOS


class RuntimeManager:
    """Detects runtimes and launches per-language analysis.

    One instance is created per orchestrator; nothing here is global.
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        passes: Optional[PassRegistry] = None,
        specs: Optional[Sequence[RuntimeSpec]] = None,
        settings_loader: Callable[[str], Dict[str, Any]] = load_runtime_settings,
        probe_timeout: float = PROBE_TIMEOUT,
        analysis_timeout: float = ANALYSIS_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.native = NativeAnalyzer(registry, passes or build_default_passes())
        self.specs: Dict[str, RuntimeSpec] = {
            spec.name: spec for spec in (specs if specs is not None else default_runtime_specs())
        }
        self.settings_loader = settings_loader
        self.probe_timeout = probe_timeout
        self.analysis_timeout = analysis_timeout

        self._runtimes: Dict[str, RuntimeInfo] = {}
        self._initialized = False
        self._lock = threading.Lock()
        self._processes: Set[subprocess.Popen] = set()
        self._stats = {"spawned": 0, "succeeded": 0, "failed": 0, "timeouts": 0, "retries": 0, "killed": 0}

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def initialize(self, force: bool = False) -> None:
        if self._initialized and not force:
            return
        runtimes: Dict[str, RuntimeInfo] = {}
        for name, languages in NATIVE_RUNTIMES.items():
            runtimes[name] = self._detect_native(name, languages)
        for spec in self.specs.values():
            runtimes[spec.name] = self.detect(spec)
        self._runtimes = runtimes
        self._initialized = True
        for info in runtimes.values():
            if info.usable:
                logger.info("Runtime %s ready (%s %s)", info.name, info.path or "in-process", info.version or "")
            else:
                logger.info("Runtime %s unavailable: %s", info.name, info.error)

    def _detect_native(self, name: str, languages: List[str]) -> RuntimeInfo:
        served = [lang for lang in languages if lang in self.registry]
        try:
            version = metadata.version("tree-sitter")
        except metadata.PackageNotFoundError:
            version = None
        return RuntimeInfo(
            name=name,
            languages=served or list(languages),
            native=True,
            available=bool(served),
            version=version,
            source="native",
            error=None if served else "no adapter registered",
        )

    def detect(self, spec: RuntimeSpec) -> RuntimeInfo:
        """Layered lookup; the first candidate answering the version probe wins."""
        settings = self.settings_loader(spec.name)
        info = RuntimeInfo(
            name=spec.name,
            languages=list(spec.languages),
            analyzer=settings.get("analyzer") or spec.default_analyzer,
        )
        if settings.get("disabled"):
            info.enabled = False
            info.error = f"disabled via {runtime_disable_env(spec.name)}"
            return info

        tried: Set[str] = set()
        for source, candidate in self._candidates(spec, settings.get("path")):
            if candidate in tried:
                continue
            tried.add(candidate)
            version = self._probe(candidate, spec)
            if version is None:
                if source == "custom":
                    logger.warning(
                        "Custom %s path '%s' failed verification; falling back", spec.name, candidate,
                    )
                continue
            info.available = True
            info.path = candidate
            info.version = version
            info.source = source
            break
        else:
            info.error = f"'{spec.executable}' not found (set {runtime_path_env(spec.name)})"
            return info

        if spec.min_version and info.version != "unknown":
            info.compatible = compare_versions(info.version, spec.min_version) >= 0
            if not info.compatible:
                info.error = f"version {info.version} is older than required {spec.min_version}"
        if info.compatible and not self._analyzer_present(spec, info.analyzer):
            info.analyzer_ready = False
            info.error = (
                f"{spec.name} analyzer not found at '{info.analyzer}'; "
                f"set [runtimes.{spec.name}] analyzer in the config file"
            )
        return info

    @staticmethod
    def _analyzer_present(spec: RuntimeSpec, analyzer: Optional[str]) -> bool:
        if not any("{analyzer}" in arg for arg in spec.analyze_args):
            return True
        return bool(analyzer) and Path(analyzer).expanduser().exists()

    def _candidates(self, spec: RuntimeSpec, custom: Optional[str]) -> Iterator[Tuple[str, str]]:
        if custom:
            yield "custom", str(Path(custom).expanduser())
        found = shutil.which(spec.executable)
        if found:
            # resolve version-manager shims to the real binary
            yield "path", os.path.realpath(found)
        for candidate in spec.well_known_paths:
            if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
                yield "well-known", candidate

    def _probe(self, executable: str, spec: RuntimeSpec) -> Optional[str]:
        try:
            completed = subprocess.run(
                [executable, *spec.version_args],
                capture_output=True,
                text=True,
                timeout=self.probe_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.debug("Version probe for %s timed out after %.1fs", executable, self.probe_timeout)
            return None
        except OSError as exc:
            logger.debug("Version probe for %s failed: %s", executable, exc)
            return None
        if completed.returncode != 0:
            logger.debug("Version probe for %s exited with %d", executable, completed.returncode)
            return None
        match = re.search(spec.version_pattern, completed.stdout + completed.stderr)
        return match.group(1) if match else "unknown"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def runtime_for_language(self, language: str) -> str:
        for spec in self.specs.values():
            if language in spec.languages:
                return spec.name
        return LANGUAGE_RUNTIMES.get(language, language)

    def has_runtime(self, name: str) -> bool:
        self.initialize()
        info = self._runtimes.get(name)
        return info is not None and info.usable

    def can_analyze(self, language: str) -> bool:
        runtime = self.runtime_for_language(language)
        if runtime in NATIVE_RUNTIMES:
            return language in self.registry
        return self.has_runtime(runtime)

    def get_runtime(self, name: str) -> Optional[RuntimeInfo]:
        self.initialize()
        return self._runtimes.get(name)

    def runtimes(self) -> List[RuntimeInfo]:
        self.initialize()
        return list(self._runtimes.values())

    def unavailable_reason(self, language: str) -> str:
        runtime = self.runtime_for_language(language)
        info = self.get_runtime(runtime)
        if info is None:
            return f"no runtime known for language '{language}'"
        return info.error or f"runtime '{runtime}' unavailable"

    def version_report(self) -> List[Dict[str, Any]]:
        report = []
        for info in self.runtimes():
            entry = asdict(info)
            entry["usable"] = info.usable
            spec = self.specs.get(info.name)
            entry["min_version"] = spec.min_version if spec else None
            if not info.usable:
                entry["suggestion"] = self.installation_suggestion(info.name)
            report.append(entry)
        return report

    def installation_suggestion(self, name: str) -> str:
        if name in NATIVE_RUNTIMES:
            packages = {"python": "tree-sitter-python", "ecmascript": "tree-sitter-typescript tree-sitter-javascript"}
            return f"pip install {packages[name]}"
        spec = self.specs.get(name)
        if spec is None:
            return f"No runtime definition for '{name}'"
        info = self._runtimes.get(name)
        if info is not None and not info.enabled:
            return f"Unset {runtime_disable_env(name)} to enable the {name} runtime"
        if info is not None and not info.compatible:
            return f"Upgrade {name} to {spec.min_version} or newer"
        if info is not None and not info.analyzer_ready:
            return f"Run: polyglot-auditor set-runtime {name} --analyzer <path to the {name} analyzer>"
        return spec.install_hint or f"Install '{spec.executable}' or set {runtime_path_env(name)}"

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["active_processes"] = len(self._processes)
        runtimes = self.runtimes()
        stats["runtimes_total"] = len(runtimes)
        stats["runtimes_available"] = sum(1 for r in runtimes if r.usable)
        return stats

    # ------------------------------------------------------------------
    # Launching
    # ------------------------------------------------------------------

    def spawn_analyzer(
        self,
        runtime_name: str,
        language: str,
        files: Sequence[Union[str, Path]],
        options: Optional[Dict[str, Any]] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[str, int, int], None]] = None,
    ) -> AnalysisResult:
        """Analyze *files* of *language* with *runtime_name*. Never raises."""
        options = options or {}
        try:
            if runtime_name in NATIVE_RUNTIMES:
                return self.native.analyze(language, files, options, cancel_event, on_progress)
            info = self.get_runtime(runtime_name)
            if info is None or not info.usable:
                reason = info.error if info is not None else "unknown runtime"
                raise RuntimeUnavailableError(f"Runtime '{runtime_name}' unavailable: {reason}")
            return self._spawn_external(info, self.specs[runtime_name], language, files, options, cancel_event)
        except RuntimeUnavailableError as exc:
            logger.info("Skipping %s: %s", language, exc)
            return AnalysisResult.failed(language, str(exc), kind=exc.kind)
        except AnalyzerError as exc:
            with self._lock:
                self._stats["failed"] += 1
            logger.warning("%s analyzer failed: %s", language, exc)
            return AnalysisResult.failed(language, str(exc), kind=exc.kind)
        except Exception as exc:
            with self._lock:
                self._stats["failed"] += 1
            logger.warning("%s analysis crashed: %s", language, exc, exc_info=True)
            return AnalysisResult.failed(language, f"Analysis failed: {exc}")

    def _command(self, info: RuntimeInfo, spec: RuntimeSpec) -> List[str]:
        args = []
        for arg in spec.analyze_args:
            if "{analyzer}" in arg:
                if not self._analyzer_present(spec, info.analyzer):
                    raise AnalyzerSpawnError(
                        f"{spec.name} analyzer not found at '{info.analyzer}'; "
                        f"set [runtimes.{spec.name}] analyzer in the config file"
                    )
                arg = arg.replace("{analyzer}", str(Path(info.analyzer).expanduser()))
            args.append(arg)
        return [info.path, *args]

    def _start(self, command: List[str]) -> subprocess.Popen:
        for attempt in (1, 2):
            try:
                return subprocess.Popen(
                    command,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                )
            except OSError as exc:
                if attempt == 1 and _is_transient(exc):
                    with self._lock:
                        self._stats["retries"] += 1
                    logger.debug("Transient spawn failure (%s); retrying once", exc)
                    time.sleep(0.1)
                    continue
                raise AnalyzerSpawnError(f"cannot start {command[0]}: {exc}") from exc
        raise AnalyzerSpawnError(f"cannot start {command[0]}")

    def _spawn_external(
        self,
        info: RuntimeInfo,
        spec: RuntimeSpec,
        language: str,
        files: Sequence[Union[str, Path]],
        options: Dict[str, Any],
        cancel_event: Optional[threading.Event],
    ) -> AnalysisResult:
        command = self._command(info, spec)
        wire_options = {k: v for k, v in options.items() if isinstance(v, (str, int, float, bool, list, dict))}
        request = build_request([str(f) for f in files], wire_options)
        timeout = float(options.get("timeout") or self.analysis_timeout)

        if cancel_event is not None and cancel_event.is_set():
            return AnalysisResult.failed(language, "Analysis cancelled", kind="cancelled")

        proc = self._start(command)
        with self._lock:
            self._processes.add(proc)
            self._stats["spawned"] += 1
        try:
            stdout, stderr = proc.communicate(request, timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            with self._lock:
                self._stats["timeouts"] += 1
            raise AnalyzerTimeoutError(f"{spec.name} analyzer timed out after {timeout:.0f}s")
        finally:
            with self._lock:
                self._processes.discard(proc)

        if cancel_event is not None and cancel_event.is_set():
            return AnalysisResult.failed(language, "Analysis cancelled", kind="cancelled")

        try:
            response = parse_response(stdout)
        except AnalyzerProtocolError as exc:
            if proc.returncode != 0:
                tail = stderr.strip().splitlines()[-1:] or [""]
                raise AnalyzerProtocolError(
                    f"{spec.name} analyzer exited with {proc.returncode}: {tail[0]}"
                ) from exc
            raise
        if response.error is not None:
            raise AnalyzerError(f"{spec.name} analyzer error {response.error.code}: {response.error.message}")

        with self._lock:
            self._stats["succeeded"] += 1
        return to_analysis_result(language, response.result)

    def kill_all(self) -> int:
        """Kill every live analyzer process; returns how many were signalled."""
        with self._lock:
            processes = list(self._processes)
        killed = 0
        for proc in processes:
            if proc.poll() is None:
                try:
                    proc.kill()
                    killed += 1
                except OSError as exc:
                    logger.debug("Could not kill analyzer %s: %s", proc.pid, exc)
        with self._lock:
            self._stats["killed"] += killed
        if killed:
            logger.info("Killed %d analyzer process(es)", killed)
        return killed
