"""Configuration paths and defaults for Polyglot Auditor."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(
    os.environ.get("POLYGLOT_AUDITOR_HOME", str(Path.home() / ".polyglot-auditor"))
).expanduser()
INDEX_DIR = BASE_DIR / "index"
CONFIG_FILE = BASE_DIR / "config.toml"

# Seconds allowed for a runtime `version` probe.
PROBE_TIMEOUT = 5.0
# Seconds allowed for one out-of-process analyzer invocation.
ANALYSIS_TIMEOUT = 300.0
# Cycles at or below this length are reported as critical.
CRITICAL_CYCLE_LENGTH = 3
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_ANALYZERS = ["complexity", "documentation", "security"]

# Environment overrides, one pair per out-of-process runtime:
#   POLYGLOT_AUDITOR_GO_PATH=/opt/go/bin/go
#   POLYGLOT_AUDITOR_DISABLE_GO=true
ENV_PREFIX = "POLYGLOT_AUDITOR"


def runtime_path_env(runtime: str) -> str:
    return f"{ENV_PREFIX}_{runtime.upper()}_PATH"


def runtime_disable_env(runtime: str) -> str:
    return f"{ENV_PREFIX}_DISABLE_{runtime.upper()}"


def ensure_base_dirs() -> None:
    """Create base directories for local storage if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
    INDEX_DIR.mkdir(parents=True, exist_ok=True)
