"""Security-pattern pass: injection sinks, hardcoded secrets, unsafe loaders."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Set

from ..adapters.base import LanguageAdapter
from ..harness import AnalysisPass
from ..models import AST, ASTNode, Position, SourceLocation, Violation

_CALL_TYPES = frozenset({"call", "call_expression"})
_CONCAT_TYPES = frozenset({"binary_operator", "binary_expression"})
_SQL_SINKS = frozenset({"execute", "executemany", "raw", "query", "executescript"})
_FILE_SINKS = frozenset({"open", "remove", "unlink", "rmdir", "readFile", "readFileSync",
                         "writeFile", "writeFileSync", "createReadStream"})
_SHELL_CALLS = frozenset({"run", "call", "Popen", "check_output", "check_call"})
_PLACEHOLDERS = ("your_key_here", "xxx", "***", "placeholder", "example", "test", "dummy", "changeme")

FIXES = {
    "sql-injection": "Use parameterized queries with placeholders instead of building SQL strings",
    "command-injection": "Pass arguments as a list and never route user input through a shell",
    "code-injection": "Replace dynamic evaluation with an explicit dispatch table or parser",
    "hardcoded-secret": "Load secrets from the environment or a secret manager",
    "unsafe-deserialization": "Use json, or yaml.safe_load(), for data from untrusted sources",
    "path-traversal": "Resolve the path and check it stays inside an allowed base directory",
}


class SecurityPass(AnalysisPass):
    name = "security"
    description = "Flags injection sinks, hardcoded secrets and unsafe deserialization."

    secret_patterns = [
        (r'api[_-]?key\s*[=:]\s*["\']([^"\']{10,})["\']', "API Key"),
        (r'password\s*[=:]\s*["\']([^"\']+)["\']', "Password"),
        (r'secret\s*[=:]\s*["\']([^"\']{10,})["\']', "Secret"),
        (r'token\s*[=:]\s*["\']([^"\']{10,})["\']', "Token"),
        (r'aws_access_key_id\s*[=:]\s*["\']([^"\']+)["\']', "AWS Access Key"),
        (r'private_key\s*[=:]\s*["\']([^"\']+)["\']', "Private Key"),
    ]

    dangerous_functions = {
        "python": {
            "eval": "code-injection",
            "exec": "code-injection",
            "compile": "code-injection",
            "__import__": "code-injection",
            "system": "command-injection",
            "popen": "command-injection",
            "spawn": "command-injection",
        },
        "ecmascript": {
            "eval": "code-injection",
            "exec": "command-injection",
            "execSync": "command-injection",
            "spawn": "command-injection",
            "spawnSync": "command-injection",
        },
    }

    def analyze_ast(self, ast: AST, adapter: LanguageAdapter, config: Dict[str, Any]) -> List[Violation]:
        calls = [node for node in ast.walk() if node.type in _CALL_TYPES]
        tainted = self._tainted_names(ast)
        family = "python" if ast.language == "python" else "ecmascript"
        dangerous = self.dangerous_functions[family]

        found: List[Violation] = []
        for call in calls:
            callee, receiver = self._callee(call)
            if callee is None:
                continue
            if callee in dangerous:
                rule = dangerous[callee]
                found.append(self._violation(
                    ast, call.location, f"Unsafe use of '{callee}()' with potential user input",
                    "critical", rule,
                ))
            if family == "python" and callee in _SHELL_CALLS and self._keyword(call, "shell") == "True":
                found.append(self._violation(
                    ast, call.location, "subprocess called with shell=True", "warning", "command-injection",
                ))
            first = self._first_argument(call)
            if callee in _SQL_SINKS and first is not None:
                how = self._dynamic_string(first, tainted)
                if how:
                    found.append(self._violation(
                        ast, call.location, f"Potential SQL injection via {how}", "critical", "sql-injection",
                    ))
            if callee in _FILE_SINKS and first is not None and self._dynamic_string(first, set()):
                found.append(self._violation(
                    ast, call.location, "Potential path traversal if path comes from user input",
                    "suggestion", "path-traversal",
                ))
            if receiver == "pickle" and callee in ("load", "loads"):
                found.append(self._violation(
                    ast, call.location, "Unsafe deserialization with pickle on untrusted data",
                    "warning", "unsafe-deserialization",
                ))
            if receiver == "yaml" and callee == "load":
                loader = self._keyword(call, "Loader") or ""
                if not loader.endswith(("SafeLoader", "BaseLoader")):
                    found.append(self._violation(
                        ast, call.location, "yaml.load() without SafeLoader", "warning", "unsafe-deserialization",
                    ))

        found.extend(self._hardcoded_secrets(ast))

        seen: Set[tuple] = set()
        unique = []
        for violation in found:
            key = (violation.line, violation.rule)
            if key not in seen:
                seen.add(key)
                unique.append(violation)
        return unique

    # ------------------------------------------------------------------
    # Detection helpers
    # ------------------------------------------------------------------

    def _violation(self, ast: AST, location: SourceLocation, message: str,
                   severity: str, rule: str) -> Violation:
        return self.create_violation(ast.file_path, location, message, severity, rule, fix=FIXES.get(rule))

    @staticmethod
    def _callee(call: ASTNode):
        """Return ``(name, receiver)`` for ``f()`` / ``obj.f()``."""
        if not call.children:
            return None, None
        func = call.children[0]
        if func.type == "identifier":
            return func.text, None
        if func.type in ("attribute", "member_expression") and len(func.children) >= 2:
            return func.children[-1].text, func.children[0].text
        return None, None

    @staticmethod
    def _arguments(call: ASTNode) -> Optional[ASTNode]:
        for child in call.children:
            if child.type in ("argument_list", "arguments"):
                return child
        return None

    def _first_argument(self, call: ASTNode) -> Optional[ASTNode]:
        args = self._arguments(call)
        if args is None:
            return None
        for child in args.children:
            if child.type not in ("keyword_argument", "comment"):
                return child
        return None

    def _keyword(self, call: ASTNode, name: str) -> Optional[str]:
        args = self._arguments(call)
        for child in args.children if args is not None else []:
            if child.type == "keyword_argument" and len(child.children) >= 2 \
                    and child.children[0].text == name:
                return child.children[-1].text
        return None

    def _dynamic_string(self, node: ASTNode, tainted: Set[str]) -> Optional[str]:
        if node.type in _CONCAT_TYPES and "+" in node.text:
            return "string concatenation"
        if node.type == "string" and any(c.type == "interpolation" for c in node.children):
            return "f-string"
        if node.type == "template_string" and any(c.type == "template_substitution" for c in node.children):
            return "template string"
        if node.type in _CALL_TYPES and self._callee(node)[0] == "format":
            return ".format()"
        if node.type == "identifier" and node.text in tainted:
            return "tainted variable"
        return None

    def _tainted_names(self, ast: AST) -> Set[str]:
        """Variables assigned from concatenation, interpolation or .format()."""
        tainted: Set[str] = set()
        for node in ast.walk():
            if node.type not in ("assignment", "variable_declarator") or len(node.children) < 2:
                continue
            target, value = node.children[0], node.children[-1]
            if target.type == "identifier" and self._dynamic_string(value, set()):
                tainted.add(target.text)
        return tainted

    def _hardcoded_secrets(self, ast: AST) -> List[Violation]:
        issues = []
        code = ast.source.decode("utf-8", errors="replace")
        for pattern, secret_type in self.secret_patterns:
            for match in re.finditer(pattern, code, re.IGNORECASE):
                value = match.group(1)
                if any(p in value.lower() for p in _PLACEHOLDERS) or len(value) < 8:
                    continue
                line = code[:match.start()].count("\n") + 1
                col = match.start() - (code.rfind("\n", 0, match.start()) + 1) + 1
                location = SourceLocation(Position(line, col), Position(line, col + len(match.group(0))))
                issues.append(self._violation(
                    ast, location, f"Hardcoded {secret_type} found", "critical", "hardcoded-secret",
                ))
        return issues
