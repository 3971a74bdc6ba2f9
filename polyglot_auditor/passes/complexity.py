"""Cyclomatic complexity and parameter-count checks."""

from __future__ import annotations

from typing import Any, Dict, List

from ..adapters.base import LanguageAdapter
from ..harness import AnalysisPass
from ..models import AST, Violation


class ComplexityPass(AnalysisPass):
    name = "complexity"
    description = "Flags functions with high cyclomatic complexity or long parameter lists."

    def analyze_ast(self, ast: AST, adapter: LanguageAdapter, config: Dict[str, Any]) -> List[Violation]:
        max_complexity = int(config.get("max_complexity", 10))
        max_parameters = int(config.get("max_parameters", 5))
        violations = []

        for fn in adapter.extract_functions(ast):
            label = f"{fn.class_name}.{fn.name}" if fn.class_name else fn.name
            if fn.complexity > max_complexity:
                severity = "critical" if fn.complexity > 2 * max_complexity else "warning"
                violations.append(self.create_violation(
                    ast.file_path, fn.location,
                    f"'{label}' has cyclomatic complexity {fn.complexity} (max {max_complexity})",
                    severity, "high-complexity",
                    fix="Split the function into smaller helpers or use early returns",
                ))
            if len(fn.parameters) > max_parameters:
                violations.append(self.create_violation(
                    ast.file_path, fn.location,
                    f"'{label}' takes {len(fn.parameters)} parameters (max {max_parameters})",
                    "suggestion", "long-parameter-list",
                    fix="Group related parameters into an object",
                ))
        return violations
