"""Pytest configuration and fixtures for Polyglot Auditor tests."""

import shutil
import sys
import tempfile
import textwrap
from pathlib import Path
from typing import Callable, Generator

import pytest

from polyglot_auditor.adapters import build_default_registry
from polyglot_auditor.adapters.registry import AdapterRegistry
from polyglot_auditor.passes import build_default_passes
from polyglot_auditor.runtime import RuntimeManager, RuntimeSpec

GO_VERSION_SCRIPT = "print('go version go1.21.4 linux/amd64')"

ANALYZER_SCRIPT = '''
import json
import sys

request = json.loads(sys.stdin.read())
files = request["params"]["files"]
print("analyzer warming up")
print(json.dumps({
    "id": request["id"],
    "result": {
        "violations": [{
            "file": files[0],
            "line": 3,
            "severity": "warning",
            "message": "shadowed variable err",
            "rule": "shadow",
            "analyzer": "govet",
        }],
        "indexEntries": [
            {"id": "main.Handler", "name": "Handler", "type": "function", "file": files[0],
             "startLine": 3, "endLine": 9, "calls": ["Helper"]},
            {"id": "main.Helper", "name": "Helper", "type": "function", "file": files[0],
             "startLine": 11, "endLine": 13},
            {"id": "main.GetUser", "name": "GET /users/:id", "type": "endpoint", "file": files[0],
             "startLine": 15, "endLine": 20, "apiEndpoint": "/users/:id", "apiMethod": "get",
             "returnType": "User"},
        ],
        "metrics": {"filesAnalyzed": len(files), "executionTime": 0.01},
    },
}))
'''


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch) -> Path:
    """Keep config and index files out of the real home directory."""
    home = tmp_path_factory.mktemp("polyglot-home")
    monkeypatch.setattr("polyglot_auditor.config.BASE_DIR", home)
    monkeypatch.setattr("polyglot_auditor.config.INDEX_DIR", home / "index")
    monkeypatch.setattr("polyglot_auditor.storage.INDEX_DIR", home / "index")
    monkeypatch.setattr("polyglot_auditor.config_manager.CONFIG_FILE", home / "config.toml")
    monkeypatch.delenv("POLYGLOT_AUDITOR_GO_PATH", raising=False)
    monkeypatch.delenv("POLYGLOT_AUDITOR_DISABLE_GO", raising=False)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def polyglot_project_path() -> Path:
    """Get path to the mixed Python/TypeScript/JavaScript fixture project."""
    return Path(__file__).parent / "fixtures" / "polyglot_project"


@pytest.fixture
def polyglot_project(temp_dir: Path, polyglot_project_path: Path) -> Path:
    """A writable copy of the fixture project."""
    target = temp_dir / "project"
    shutil.copytree(polyglot_project_path, target)
    return target


@pytest.fixture
def registry() -> AdapterRegistry:
    return build_default_registry()


@pytest.fixture
def write_file(temp_dir: Path) -> Callable[[str, str], Path]:
    """Write dedented source under ``temp_dir`` and return its path."""
    def _write(relative: str, content: str) -> Path:
        path = temp_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return path
    return _write


def no_settings(_runtime: str) -> dict:
    return {"path": None, "disabled": False, "analyzer": None}


@pytest.fixture
def analyzer_script(temp_dir: Path) -> Path:
    script = temp_dir / "fake_go_analyzer.py"
    script.write_text(ANALYZER_SCRIPT, encoding="utf-8")
    return script


@pytest.fixture
def make_go_spec(analyzer_script: Path) -> Callable[..., RuntimeSpec]:
    """A ``go`` runtime whose executable is the running Python interpreter."""
    def _make(version_script: str = GO_VERSION_SCRIPT, analyzer: Path = analyzer_script) -> RuntimeSpec:
        return RuntimeSpec(
            name="go",
            languages=["go"],
            executable=sys.executable,
            version_args=["-c", version_script],
            version_pattern=r"go(\d+\.\d+(?:\.\d+)?)",
            analyze_args=["{analyzer}"],
            default_analyzer=str(analyzer),
            min_version="1.18",
            install_hint="Install Go",
        )
    return _make


@pytest.fixture
def go_manager(registry: AdapterRegistry, make_go_spec) -> RuntimeManager:
    """RuntimeManager with native adapters plus the fake ``go`` runtime."""
    return RuntimeManager(
        registry,
        build_default_passes(),
        specs=[make_go_spec()],
        settings_loader=no_settings,
    )


@pytest.fixture
def native_manager(registry: AdapterRegistry) -> RuntimeManager:
    """RuntimeManager with no external runtimes."""
    return RuntimeManager(registry, build_default_passes(), specs=[], settings_loader=no_settings)
