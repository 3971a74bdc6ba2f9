"""Polyglot Auditor: cross-language static analysis orchestration."""

__version__ = "0.3.0"
