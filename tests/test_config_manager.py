"""Tests for TOML configuration loading and runtime overrides."""

from pathlib import Path

import toml

from polyglot_auditor.config_manager import (
    DEFAULT_ANALYSIS_CONFIG,
    load_analysis_config,
    load_full_config,
    load_runtime_settings,
    save_runtime_setting,
)


def write_config(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


class TestAnalysisConfig:
    """The [analysis] table merged over defaults."""

    def test_defaults_without_file(self, temp_dir: Path):
        config = load_analysis_config(temp_dir / "missing.toml")
        assert config == DEFAULT_ANALYSIS_CONFIG
        config["analyzers"].append("mutated")
        assert "mutated" not in DEFAULT_ANALYSIS_CONFIG["analyzers"]

    def test_section_overrides_defaults(self, temp_dir: Path):
        path = write_config(temp_dir / "config.toml", """
[analysis]
analyzers = ["security"]
min_severity = "warning"
exclude = ["vendor/*"]
colour = "blue"
""")
        config = load_analysis_config(path)
        assert config["analyzers"] == ["security"]
        assert config["min_severity"] == "warning"
        assert config["exclude"] == ["vendor/*"]
        assert config["max_concurrency"] == DEFAULT_ANALYSIS_CONFIG["max_concurrency"]
        assert "colour" not in config

    def test_invalid_toml_falls_back(self, temp_dir: Path, caplog):
        path = write_config(temp_dir / "config.toml", "[analysis\nbroken = ")
        assert load_full_config(path) == {}
        assert load_analysis_config(path) == DEFAULT_ANALYSIS_CONFIG
        assert "Ignoring unreadable config file" in caplog.text

    def test_default_location_is_patched_home(self, isolated_home: Path):
        write_config(isolated_home / "config.toml", '[analysis]\nmin_severity = "critical"\n')
        assert load_analysis_config()["min_severity"] == "critical"


class TestRuntimeSettings:
    """Per-runtime overrides from file and environment."""

    def test_defaults(self, temp_dir: Path):
        assert load_runtime_settings("go", temp_dir / "none.toml") == {
            "path": None, "disabled": False, "analyzer": None,
        }

    def test_file_settings(self, temp_dir: Path):
        path = write_config(temp_dir / "config.toml", """
[runtimes.go]
path = "/opt/go/bin/go"
disabled = true
analyzer = "~/src/go-analyzer"
""")
        assert load_runtime_settings("go", path) == {
            "path": "/opt/go/bin/go", "disabled": True, "analyzer": "~/src/go-analyzer",
        }
        assert load_runtime_settings("rust", path)["path"] is None

    def test_environment_wins(self, temp_dir: Path, monkeypatch):
        path = write_config(temp_dir / "config.toml", '[runtimes.go]\npath = "/opt/go/bin/go"\ndisabled = true\n')
        monkeypatch.setenv("POLYGLOT_AUDITOR_GO_PATH", "/custom/go")
        monkeypatch.setenv("POLYGLOT_AUDITOR_DISABLE_GO", "false")
        settings = load_runtime_settings("go", path)
        assert settings["path"] == "/custom/go"
        assert settings["disabled"] is False

    def test_save_round_trip(self, temp_dir: Path):
        path = temp_dir / "nested" / "config.toml"
        save_runtime_setting("go", path="/usr/local/go/bin/go", config_file=path)
        save_runtime_setting("go", disabled=True, analyzer="/srv/analyzer", config_file=path)

        assert load_runtime_settings("go", path) == {
            "path": "/usr/local/go/bin/go", "disabled": True, "analyzer": "/srv/analyzer",
        }

    def test_save_keeps_other_sections(self, temp_dir: Path):
        path = write_config(temp_dir / "config.toml", '[analysis]\nmin_severity = "warning"\n')
        save_runtime_setting("go", disabled=False, config_file=path)
        data = toml.load(str(path))
        assert data["analysis"]["min_severity"] == "warning"
        assert data["runtimes"]["go"] == {"disabled": False}
