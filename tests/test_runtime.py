"""Tests for runtime detection and analyzer launching."""

import sys
import threading

import pytest

from polyglot_auditor.passes import build_default_passes
from polyglot_auditor.runtime import RuntimeManager, compare_versions, default_runtime_specs


def settings(path=None, disabled=False, analyzer=None):
    return lambda _runtime: {"path": path, "disabled": disabled, "analyzer": analyzer}


class TestVersionComparison:
    @pytest.mark.parametrize("left, right, expected", [
        ("1.21.4", "1.18", 1),
        ("go1.18", "1.18.0", 0),
        ("v1.9", "1.18", -1),
        ("2.0-rc1", "1.99", 1),
    ])
    def test_compare_versions(self, left, right, expected):
        assert compare_versions(left, right) == expected


class TestDetection:
    """Layered lookup: custom path, PATH, well-known locations."""

    def test_native_runtimes_are_in_process(self, native_manager):
        python = native_manager.get_runtime("python")
        assert python.native and python.usable
        assert python.languages == ["python"]
        ecmascript = native_manager.get_runtime("ecmascript")
        assert ecmascript.languages == ["typescript", "javascript"]

    def test_can_analyze(self, go_manager):
        assert go_manager.can_analyze("python")
        assert go_manager.can_analyze("typescript")
        assert go_manager.can_analyze("go")
        assert not go_manager.can_analyze("rust")

    def test_external_runtime_found_on_path(self, go_manager):
        info = go_manager.get_runtime("go")
        assert info.usable
        assert info.version == "1.21.4"
        assert info.source == "path"
        assert info.compatible

    def test_custom_path_wins(self, registry, make_go_spec):
        manager = RuntimeManager(registry, specs=[make_go_spec()], settings_loader=settings(path=sys.executable))
        info = manager.get_runtime("go")
        assert info.source == "custom"
        assert info.path == sys.executable

    def test_invalid_custom_path_falls_back(self, registry, make_go_spec, caplog):
        manager = RuntimeManager(
            registry, specs=[make_go_spec()], settings_loader=settings(path="/nonexistent/bin/go"),
        )
        info = manager.get_runtime("go")
        assert info.usable
        assert info.source == "path"
        assert "failed verification" in caplog.text

    def test_failing_probe_means_unavailable(self, registry, make_go_spec, monkeypatch):
        monkeypatch.setattr("polyglot_auditor.runtime.shutil.which", lambda _name: None)
        spec = make_go_spec(version_script="import sys; sys.exit(3)")
        manager = RuntimeManager(registry, specs=[spec], settings_loader=settings(path=sys.executable))
        info = manager.get_runtime("go")
        assert not info.available
        assert "not found" in info.error
        assert not manager.can_analyze("go")
        assert "POLYGLOT_AUDITOR_GO_PATH" in manager.unavailable_reason("go")

    def test_probe_timeout(self, registry, make_go_spec, monkeypatch):
        monkeypatch.setattr("polyglot_auditor.runtime.shutil.which", lambda _name: None)
        spec = make_go_spec(version_script="import time; time.sleep(5)")
        manager = RuntimeManager(
            registry, specs=[spec], settings_loader=settings(path=sys.executable), probe_timeout=0.3,
        )
        assert not manager.get_runtime("go").available

    def test_old_version_is_incompatible(self, registry, make_go_spec):
        spec = make_go_spec(version_script="print('go version go1.16.2 linux/amd64')")
        manager = RuntimeManager(registry, specs=[spec], settings_loader=settings())
        info = manager.get_runtime("go")
        assert info.available and not info.compatible
        assert not info.usable
        assert "1.18" in manager.installation_suggestion("go")

    def test_disabled_runtime(self, registry, make_go_spec):
        manager = RuntimeManager(registry, specs=[make_go_spec()], settings_loader=settings(disabled=True))
        info = manager.get_runtime("go")
        assert not info.enabled
        assert "POLYGLOT_AUDITOR_DISABLE_GO" in manager.installation_suggestion("go")

    def test_binary_without_analyzer_is_not_usable(self, registry, make_go_spec, temp_dir):
        manager = RuntimeManager(
            registry, specs=[make_go_spec(analyzer=temp_dir / "missing")], settings_loader=settings(),
        )
        info = manager.get_runtime("go")
        assert info.available and info.compatible
        assert not info.analyzer_ready
        assert not info.usable
        assert not manager.can_analyze("go")
        assert "[runtimes.go] analyzer" in manager.unavailable_reason("go")
        assert "set-runtime go --analyzer" in manager.installation_suggestion("go")

    def test_configured_analyzer_overrides_default(self, registry, make_go_spec, analyzer_script, temp_dir):
        manager = RuntimeManager(
            registry, specs=[make_go_spec(analyzer=temp_dir / "missing")],
            settings_loader=settings(analyzer=str(analyzer_script)),
        )
        assert manager.get_runtime("go").usable

    def test_version_report(self, go_manager):
        report = {entry["name"]: entry for entry in go_manager.version_report()}
        assert set(report) == {"python", "ecmascript", "go"}
        assert report["go"]["usable"]
        assert report["go"]["min_version"] == "1.18"
        assert "suggestion" not in report["go"]

    def test_default_specs_describe_go(self):
        (spec,) = default_runtime_specs()
        assert spec.name == "go"
        assert spec.version_args == ["version"]
        assert "{analyzer}" in " ".join(spec.analyze_args)


class TestSpawning:
    """Analyzer launches never raise."""

    def test_native_analysis(self, native_manager, write_file):
        path = write_file("app.py", "def run(x):\n    return eval(x)\n")
        result = native_manager.spawn_analyzer("python", "python", [path], {"analyzers": ["security"]})
        assert result.language == "python"
        assert [v.rule for v in result.violations] == ["code-injection"]
        assert result.metrics.files_analyzed == 1
        assert {e.type for e in result.index_entries} == {"module", "function"}

    def test_external_analysis(self, go_manager, write_file):
        path = write_file("main.go", "package main\n")
        result = go_manager.spawn_analyzer("go", "go", [path])
        assert result.errors == []
        assert [v.rule for v in result.violations] == ["shadow"]
        assert [e.id for e in result.index_entries] == ["go:main.Handler", "go:main.Helper", "go:main.GetUser"]
        assert result.metrics.files_analyzed == 1
        stats = go_manager.stats()
        assert stats["spawned"] == 1
        assert stats["succeeded"] == 1
        assert stats["active_processes"] == 0

    def test_external_timeout(self, registry, make_go_spec, write_file, temp_dir):
        slow = temp_dir / "slow.py"
        slow.write_text("import time\ntime.sleep(30)\n", encoding="utf-8")
        manager = RuntimeManager(
            registry, specs=[make_go_spec(analyzer=slow)], settings_loader=settings(), analysis_timeout=0.5,
        )
        result = manager.spawn_analyzer("go", "go", [write_file("main.go", "package main\n")])
        assert result.violations == []
        assert [e.kind for e in result.errors] == ["timeout"]
        assert manager.stats()["timeouts"] == 1

    def test_external_crash_reports_stderr(self, registry, make_go_spec, write_file, temp_dir):
        crash = temp_dir / "crash.py"
        crash.write_text("import sys\nsys.stderr.write('panic: boom\\n')\nsys.exit(2)\n", encoding="utf-8")
        manager = RuntimeManager(registry, specs=[make_go_spec(analyzer=crash)], settings_loader=settings())
        result = manager.spawn_analyzer("go", "go", [write_file("main.go", "package main\n")])
        (error,) = result.errors
        assert error.kind == "protocol"
        assert "exited with 2" in error.error
        assert "panic: boom" in error.error

    def test_external_error_response(self, registry, make_go_spec, write_file, temp_dir):
        failing = temp_dir / "failing.py"
        failing.write_text(
            "import json\nprint(json.dumps({'id': 1, 'error': {'code': -32001, 'message': 'no go.mod'}}))\n",
            encoding="utf-8",
        )
        manager = RuntimeManager(registry, specs=[make_go_spec(analyzer=failing)], settings_loader=settings())
        result = manager.spawn_analyzer("go", "go", [write_file("main.go", "package main\n")])
        assert result.errors[0].kind == "analysis"
        assert "no go.mod" in result.errors[0].error

    def test_missing_analyzer_is_unavailable(self, registry, make_go_spec, temp_dir, write_file):
        manager = RuntimeManager(
            registry, specs=[make_go_spec(analyzer=temp_dir / "nope.py")], settings_loader=settings(),
        )
        result = manager.spawn_analyzer("go", "go", [write_file("main.go", "package main\n")])
        assert result.errors[0].kind == "runtime-unavailable"
        assert "analyzer not found" in result.errors[0].error
        assert manager.stats()["failed"] == 0

    def test_unavailable_runtime(self, registry, make_go_spec):
        manager = RuntimeManager(registry, specs=[make_go_spec()], settings_loader=settings(disabled=True))
        result = manager.spawn_analyzer("go", "go", ["main.go"])
        assert result.errors[0].kind == "runtime-unavailable"
        assert result.errors[0].language == "go"

    def test_cancelled_before_spawn(self, go_manager, write_file):
        cancel = threading.Event()
        cancel.set()
        result = go_manager.spawn_analyzer("go", "go", [write_file("main.go", "package main\n")],
                                           cancel_event=cancel)
        assert result.errors[0].kind == "cancelled"
        assert go_manager.stats()["spawned"] == 0

    def test_kill_all_with_nothing_running(self, go_manager):
        assert go_manager.kill_all() == 0


class TestIsolation:
    """Each manager owns its own state."""

    def test_managers_do_not_share_detection(self, registry, make_go_spec):
        enabled = RuntimeManager(registry, build_default_passes(), specs=[make_go_spec()],
                                 settings_loader=settings())
        disabled = RuntimeManager(registry, build_default_passes(), specs=[make_go_spec()],
                                  settings_loader=settings(disabled=True))
        assert enabled.has_runtime("go")
        assert not disabled.has_runtime("go")
