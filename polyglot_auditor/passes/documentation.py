"""Missing documentation on exported functions and classes."""

from __future__ import annotations

from typing import Any, Dict, List

from ..adapters.base import LanguageAdapter
from ..harness import AnalysisPass
from ..models import AST, Violation


class DocumentationPass(AnalysisPass):
    name = "documentation"
    description = "Flags exported functions and classes without documentation."

    def analyze_ast(self, ast: AST, adapter: LanguageAdapter, config: Dict[str, Any]) -> List[Violation]:
        min_lines = int(config.get("min_documented_lines", 3))
        violations = []

        for cls in adapter.extract_classes(ast):
            if cls.is_exported and not cls.documentation:
                violations.append(self.create_violation(
                    ast.file_path, cls.location,
                    f"Class '{cls.name}' is exported but undocumented",
                    "suggestion", "missing-class-docs",
                ))

        for fn in adapter.extract_functions(ast):
            if not fn.is_exported or fn.documentation or fn.name.startswith("__"):
                continue
            # one-liners are self-explanatory
            if fn.location.end_line - fn.location.start_line + 1 < min_lines:
                continue
            kind = "Method" if fn.is_method else "Function"
            label = f"{fn.class_name}.{fn.name}" if fn.class_name else fn.name
            violations.append(self.create_violation(
                ast.file_path, fn.location,
                f"{kind} '{label}' is exported but undocumented",
                "suggestion", "missing-function-docs",
            ))
        return violations
