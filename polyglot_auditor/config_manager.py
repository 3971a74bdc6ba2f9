"""Configuration manager for Polyglot Auditor using TOML files.

Example ``~/.polyglot-auditor/config.toml``::

    [analysis]
    analyzers = ["complexity", "security"]
    min_severity = "warning"
    max_concurrency = 2
    exclude = ["vendor/*"]

    [runtimes.go]
    path = "/opt/go/bin/go"
    disabled = false
    analyzer = "~/src/go-analyzer"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from .config import (
    ANALYSIS_TIMEOUT,
    CONFIG_FILE,
    DEFAULT_ANALYZERS,
    DEFAULT_MAX_CONCURRENCY,
    runtime_disable_env,
    runtime_path_env,
)

logger = logging.getLogger(__name__)


DEFAULT_ANALYSIS_CONFIG: Dict[str, Any] = {
    "analyzers": list(DEFAULT_ANALYZERS),
    "min_severity": "suggestion",
    "timeout": ANALYSIS_TIMEOUT,
    "max_concurrency": DEFAULT_MAX_CONCURRENCY,
    "exclude": [],
}


def load_full_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    path = config_file or CONFIG_FILE
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return {}


def load_analysis_config(config_file: Optional[Path] = None) -> Dict[str, Any]:
    """Load the ``[analysis]`` section merged over the defaults."""
    merged = {
        key: list(value) if isinstance(value, list) else value
        for key, value in DEFAULT_ANALYSIS_CONFIG.items()
    }
    section = load_full_config(config_file).get("analysis", {})
    if not isinstance(section, dict):
        logger.warning("[analysis] must be a table; using defaults")
        return merged
    for key, value in section.items():
        if key not in merged:
            logger.debug("Unknown analysis option '%s' ignored", key)
            continue
        merged[key] = value
    return merged


def load_runtime_settings(
    runtime: str,
    config_file: Optional[Path] = None,
) -> Dict[str, Any]:
    """Resolve the path override and disable flag for *runtime*.

    Environment variables win over the ``[runtimes.<name>]`` table.

    Returns:
        ``{"path": Optional[str], "disabled": bool, "analyzer": Optional[str]}``
    """
    runtimes = load_full_config(config_file).get("runtimes", {})
    section = runtimes.get(runtime, {}) if isinstance(runtimes, dict) else {}

    path = section.get("path") or None
    disabled = bool(section.get("disabled", False))

    env_path = os.environ.get(runtime_path_env(runtime))
    if env_path:
        path = env_path
    env_disabled = os.environ.get(runtime_disable_env(runtime))
    if env_disabled is not None:
        disabled = env_disabled.strip().lower() == "true"

    return {"path": path, "disabled": disabled, "analyzer": section.get("analyzer") or None}


def save_runtime_setting(
    runtime: str,
    path: Optional[str] = None,
    disabled: Optional[bool] = None,
    analyzer: Optional[str] = None,
    config_file: Optional[Path] = None,
) -> None:
    """Persist a runtime override into the TOML config file."""
    target = config_file or CONFIG_FILE
    config = load_full_config(target)
    section = config.setdefault("runtimes", {}).setdefault(runtime, {})
    if path is not None:
        section["path"] = path
    if disabled is not None:
        section["disabled"] = disabled
    if analyzer is not None:
        section["analyzer"] = analyzer

    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        toml.dump(config, f)
