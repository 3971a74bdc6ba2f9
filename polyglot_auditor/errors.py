"""Exception hierarchy.

Only :class:`DiscoveryError` escapes an orchestration run; everything else
is converted into an :class:`~polyglot_auditor.models.ErrorRecord`.
"""

from __future__ import annotations


class PolyglotError(Exception):
    """Base class for all Polyglot Auditor errors."""


class DiscoveryError(PolyglotError):
    """File discovery failed; the run cannot proceed."""


class RuntimeUnavailableError(PolyglotError):
    """No usable runtime exists for a language."""

    kind = "runtime-unavailable"


class AnalyzerError(PolyglotError):
    """An out-of-process analyzer failed."""

    kind = "analysis"


class AnalyzerTimeoutError(AnalyzerError):
    kind = "timeout"


class AnalyzerProtocolError(AnalyzerError):
    kind = "protocol"


class AnalyzerSpawnError(AnalyzerError):
    kind = "spawn"
