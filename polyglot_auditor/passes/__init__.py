"""Built-in analysis passes and the name registry used to select them."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Type

from ..adapters.registry import AdapterRegistry
from ..harness import AnalysisPass
from .complexity import ComplexityPass
from .documentation import DocumentationPass
from .security import SecurityPass

logger = logging.getLogger(__name__)


class PassRegistry:
    """Maps pass names to pass classes; instantiated per orchestrator."""

    def __init__(self, passes: Iterable[Type[AnalysisPass]] = ()) -> None:
        self._passes: Dict[str, Type[AnalysisPass]] = {}
        for pass_cls in passes:
            self.register(pass_cls)

    def register(self, pass_cls: Type[AnalysisPass]) -> None:
        if not pass_cls.name:
            raise ValueError(f"{pass_cls.__name__} has no name")
        self._passes[pass_cls.name] = pass_cls

    def names(self) -> List[str]:
        return list(self._passes)

    def build(self, registry: AdapterRegistry, names: Optional[Iterable[str]] = None) -> List[AnalysisPass]:
        selected = self.names() if names is None else list(names)
        built = []
        for name in selected:
            pass_cls = self._passes.get(name)
            if pass_cls is None:
                logger.warning("Unknown analyzer '%s' ignored", name)
                continue
            built.append(pass_cls(registry))
        return built


def build_default_passes() -> PassRegistry:
    return PassRegistry([ComplexityPass, DocumentationPass, SecurityPass])


__all__ = [
    "ComplexityPass",
    "DocumentationPass",
    "PassRegistry",
    "SecurityPass",
    "build_default_passes",
]
