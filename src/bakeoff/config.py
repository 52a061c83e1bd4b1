# Copyright (c) Syntropy Systems
"""Configuration management for bakeoff."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

# Composite score weights. Manual accuracy review is not automated, so its
# share is folded into quality.
DEFAULT_WEIGHTS: dict[str, float] = {
    "quality": 0.50,
    "reasoning": 0.15,
    "json_validity": 0.10,
    "balance": 0.10,
    "speed": 0.05,
    "cost": 0.05,
    "robustness": 0.05,
}


@dataclass
class BakeoffConfig:
    """Configuration for bakeoff."""

    # Age (ms) after which a lease is considered abandoned
    lease_duration_ms: int = 120_000

    # Retention for progress and lock records (seconds)
    progress_ttl_seconds: int = 86_400

    # Retention for task results and the summary (seconds)
    result_ttl_seconds: int = 604_800

    # Driver delays (seconds)
    step_delay: float = 0.5
    busy_backoff: float = 3.0
    error_backoff: float = 5.0

    # Command run once per task by the local task runner
    task_command: list[str] = field(default_factory=list)
    task_timeout: int = 90

    # Scoring policy
    daily_call_volume: int = 1000
    consensus_threshold: float = 0.66
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    # Bearer token guarding the HTTP API (None disables the check)
    admin_token: str | None = None


def find_bakeoff_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .bakeoff directory by walking up from start_path.

    Returns None if no .bakeoff directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        bakeoff_dir = current / ".bakeoff"
        if bakeoff_dir.is_dir():
            return bakeoff_dir
        current = current.parent

    # Check root
    bakeoff_dir = current / ".bakeoff"
    if bakeoff_dir.is_dir():
        return bakeoff_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global bakeoff config directory (~/.bakeoff)."""
    return Path.home() / ".bakeoff"


def _as_float(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def load_config(bakeoff_dir: Path | None = None) -> BakeoffConfig:
    """Load configuration from .bakeoff/config.yaml or defaults.

    Looks for config in:
    1. Provided bakeoff_dir
    2. Nearest .bakeoff directory walking up
    3. ~/.bakeoff/config.yaml
    4. Defaults

    BAKEOFF_ADMIN_TOKEN overrides the file's admin_token.
    """
    config = BakeoffConfig()

    config_path = None

    if bakeoff_dir is not None:
        config_path = bakeoff_dir / "config.yaml"
    else:
        found_dir = find_bakeoff_dir()
        if found_dir is not None:
            config_path = found_dir / "config.yaml"
        else:
            global_config = get_global_config_dir() / "config.yaml"
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
        _apply(config, data)

    env_token = os.environ.get("BAKEOFF_ADMIN_TOKEN")
    if env_token:
        config.admin_token = env_token

    return config


def _apply(config: BakeoffConfig, data: dict[str, object]) -> None:
    """Copy recognised keys from a parsed config file onto config."""
    for name in ("lease_duration_ms", "progress_ttl_seconds", "result_ttl_seconds",
                 "task_timeout", "daily_call_volume"):
        value = _as_float(data.get(name))
        if value is not None:
            setattr(config, name, int(value))

    for name in ("step_delay", "busy_backoff", "error_backoff", "consensus_threshold"):
        value = _as_float(data.get(name))
        if value is not None:
            setattr(config, name, value)

    task_command = data.get("task_command")
    if isinstance(task_command, list):
        config.task_command = [str(token) for token in cast("list[object]", task_command)]
    elif isinstance(task_command, str):
        config.task_command = task_command.split()

    weights = data.get("weights")
    if isinstance(weights, dict):
        for key, raw in cast("dict[str, object]", weights).items():
            if key not in DEFAULT_WEIGHTS:
                msg = f"Unknown score dimension in weights: {key}"
                raise ValueError(msg)
            value = _as_float(raw)
            if value is not None:
                config.weights[key] = value

    admin_token = data.get("admin_token")
    if isinstance(admin_token, str) and admin_token:
        config.admin_token = admin_token


def get_db_path(bakeoff_dir: Path | None = None) -> Path:
    """Get the path to the SQLite store."""
    if bakeoff_dir is None:
        bakeoff_dir = find_bakeoff_dir()

    if bakeoff_dir is None:
        msg = "No .bakeoff directory found. Run 'bakeoff init' first."
        raise RuntimeError(msg)

    return bakeoff_dir / "bakeoff.db"


def require_bakeoff_dir() -> Path:
    """Get bakeoff directory or raise an error if not found."""
    bakeoff_dir = find_bakeoff_dir()
    if bakeoff_dir is None:
        msg = "No .bakeoff directory found. Run 'bakeoff init' first."
        raise RuntimeError(msg)
    return bakeoff_dir
