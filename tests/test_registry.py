"""Tests for adapter registration and selection."""

import pytest

from polyglot_auditor.adapters import (
    AdapterRegistry,
    JavaScriptAdapter,
    PythonAdapter,
    TypeScriptAdapter,
    build_default_registry,
)


class MissingGrammarAdapter(PythonAdapter):
    language = "cobol"
    extensions = frozenset({".cbl"})
    grammar_module = "tree_sitter_cobol_not_installed"


class TestAdapterRegistry:
    """Registry resolves a path to at most one adapter."""

    @pytest.mark.parametrize("path, language", [
        ("app/main.py", "python"),
        ("web/index.tsx", "typescript"),
        ("web/legacy.cjs", "javascript"),
        ("service/main.go", None),
        ("README", None),
    ])
    def test_adapter_for(self, path, language):
        registry = build_default_registry()
        adapter = registry.adapter_for(path)
        assert (adapter.language if adapter else None) == language

    def test_exactly_one_adapter_claims_each_file(self):
        registry = build_default_registry()
        for path in ["a.py", "a.pyi", "a.ts", "a.mts", "a.js", "a.jsx"]:
            claims = [a for a in registry.adapters if a.supports_file(path)]
            assert len(claims) == 1
            assert registry.adapter_for(path) is claims[0]

    def test_selected_adapter_parses_the_file(self):
        registry = build_default_registry()
        adapter = registry.adapter_for("util.ts")
        ast = adapter.parse("util.ts", "export const x: number = 1;\n")
        assert ast.language == "typescript"
        assert ast.errors == []

    def test_duplicate_language_rejected(self):
        registry = AdapterRegistry([PythonAdapter()])
        with pytest.raises(ValueError):
            registry.register(PythonAdapter())

    def test_registration_order_wins(self):
        registry = AdapterRegistry([JavaScriptAdapter(), TypeScriptAdapter()])
        assert registry.languages() == ["javascript", "typescript"]
        assert registry.supported_extensions()[".js"] == "javascript"

    def test_unavailable_grammar_is_skipped(self):
        adapter = MissingGrammarAdapter()
        assert not adapter.available
        registry = AdapterRegistry([adapter, PythonAdapter()])
        assert "cobol" not in registry
        assert registry.adapter_for("prog.cbl") is None
        assert len(registry) == 1

    def test_unregister(self):
        registry = build_default_registry()
        assert registry.unregister("javascript")
        assert not registry.unregister("javascript")
        assert registry.adapter_for("a.js") is None

    def test_registries_are_independent(self):
        first = build_default_registry()
        second = build_default_registry()
        first.unregister("python")
        assert "python" in second
