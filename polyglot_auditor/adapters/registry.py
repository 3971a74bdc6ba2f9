"""Explicit adapter registry: maps a file to the single adapter that claims it."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .base import LanguageAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Ordered collection of adapters; first registered match wins."""

    def __init__(self, adapters: Iterable[LanguageAdapter] = ()) -> None:
        self._adapters: List[LanguageAdapter] = []
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: LanguageAdapter) -> None:
        if not adapter.available:
            logger.warning("Adapter for '%s' is unavailable; skipping", adapter.language)
            return
        if any(existing.language == adapter.language for existing in self._adapters):
            raise ValueError(f"An adapter for '{adapter.language}' is already registered")
        self._adapters.append(adapter)
        logger.debug("Registered %s adapter", adapter.language)

    def unregister(self, language: str) -> bool:
        before = len(self._adapters)
        self._adapters = [a for a in self._adapters if a.language != language]
        return len(self._adapters) != before

    @property
    def adapters(self) -> List[LanguageAdapter]:
        return list(self._adapters)

    def get(self, language: str) -> Optional[LanguageAdapter]:
        for adapter in self._adapters:
            if adapter.language == language:
                return adapter
        return None

    def adapter_for(self, path: Union[str, Path]) -> Optional[LanguageAdapter]:
        for adapter in self._adapters:
            if adapter.supports_file(path):
                return adapter
        return None

    def languages(self) -> List[str]:
        return [adapter.language for adapter in self._adapters]

    def supported_extensions(self) -> Dict[str, str]:
        """Extension -> language for every extension some adapter wins."""
        table: Dict[str, str] = {}
        for adapter in self._adapters:
            for ext in sorted(adapter.extensions):
                table.setdefault(ext, adapter.language)
        return table

    def __contains__(self, language: str) -> bool:
        return self.get(language) is not None

    def __len__(self) -> int:
        return len(self._adapters)
