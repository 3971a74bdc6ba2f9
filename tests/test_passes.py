"""Tests for the built-in analysis passes."""

import pytest

from polyglot_auditor.passes import (
    ComplexityPass,
    DocumentationPass,
    PassRegistry,
    SecurityPass,
    build_default_passes,
)

BRANCHY = '''
def branchy(x, items):
    if x > 1 and x < 10:
        return 1
    for i in items:
        if i:
            x += i
    return x
'''


class TestComplexityPass:
    """Cyclomatic complexity thresholds."""

    def test_warning_above_threshold(self, registry, write_file):
        path = write_file("branchy.py", BRANCHY)
        result = ComplexityPass(registry).analyze([path], {"max_complexity": 3})
        assert [(v.rule, v.severity) for v in result.violations] == [("high-complexity", "warning")]
        assert result.violations[0].analyzer == "complexity"
        assert result.violations[0].fix

    def test_critical_when_far_above_threshold(self, registry, write_file):
        path = write_file("branchy.py", BRANCHY)
        result = ComplexityPass(registry).analyze([path], {"max_complexity": 2})
        assert result.violations[0].severity == "critical"

    def test_long_parameter_list(self, registry, write_file):
        path = write_file("wide.ts", "export function wide(a, b, c, d, e, f) { return a; }\n")
        result = ComplexityPass(registry).analyze([path])
        assert [v.rule for v in result.violations] == ["long-parameter-list"]


class TestDocumentationPass:
    """Exported, non-trivial declarations need docs."""

    def test_flags_undocumented_exports(self, registry, write_file):
        path = write_file("mod.py", '''
class Widget:
    pass


def build(x):
    y = x + 1
    return y


def documented(x):
    """Has docs."""
    return x


def _hidden(x):
    y = x
    return y
''')
        result = DocumentationPass(registry).analyze([path])
        messages = sorted(v.message for v in result.violations)
        assert messages == [
            "Class 'Widget' is exported but undocumented",
            "Function 'build' is exported but undocumented",
        ]
        assert all(v.severity == "suggestion" for v in result.violations)


class TestSecurityPass:
    """Injection sinks and secrets across both language families."""

    def test_python_findings(self, registry, write_file):
        path = write_file("danger.py", '''
API_KEY = "sk_live_abcdef1234567890"


def run(user_input, cursor, user_id):
    eval(user_input)
    cursor.execute("SELECT * FROM users WHERE id = " + user_id)
    subprocess.run(user_input, shell=True)
    data = pickle.loads(user_input)
    return data
''')
        result = SecurityPass(registry).analyze([path])
        rules = {v.rule for v in result.violations}
        assert {"hardcoded-secret", "code-injection", "sql-injection",
                "command-injection", "unsafe-deserialization"} <= rules
        eval_hit = next(v for v in result.violations if v.rule == "code-injection")
        assert eval_hit.severity == "critical"
        assert eval_hit.line == 5

    def test_parameterized_query_is_clean(self, registry, write_file):
        path = write_file("safe.py", '''
def run(cursor, user_id):
    cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
''')
        assert SecurityPass(registry).analyze([path]).violations == []

    def test_typescript_template_sql(self, registry, write_file):
        path = write_file("repo.ts", '''
export function find(db: Db, name: string) {
  return db.query(`SELECT * FROM users WHERE name = '${name}'`);
}
''')
        result = SecurityPass(registry).analyze([path])
        assert [v.rule for v in result.violations] == ["sql-injection"]
        assert "template string" in result.violations[0].message

    def test_placeholder_secret_is_ignored(self, registry, write_file):
        path = write_file("settings.py", 'password = "changeme-please"\n')
        assert SecurityPass(registry).analyze([path]).violations == []


class TestPassRegistry:
    """Name-based pass selection."""

    def test_default_names(self):
        assert build_default_passes().names() == ["complexity", "documentation", "security"]

    def test_build_selected(self, registry):
        built = build_default_passes().build(registry, ["security", "unknown"])
        assert [p.name for p in built] == ["security"]

    def test_empty_selection_builds_nothing(self, registry):
        assert build_default_passes().build(registry, []) == []

    def test_none_builds_everything(self, registry):
        assert len(build_default_passes().build(registry)) == 3

    def test_nameless_pass_rejected(self):
        class Nameless(ComplexityPass):
            name = ""

        with pytest.raises(ValueError, match="Nameless"):
            PassRegistry([Nameless])
