# Copyright (c) Syntropy Systems
"""Pytest fixtures for bakeoff tests."""

from __future__ import annotations

import os
import sqlite3
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Optional

import pytest

from bakeoff.config import BakeoffConfig
from bakeoff.models.experiment import TaskResult, TaskScores

# Store original cwd at module load time
_original_cwd = Path.cwd()


class ScriptedRunner:
    """Task runner returning canned results and recording every call."""

    def __init__(
        self,
        failures: Optional[set[tuple[str, str, int]]] = None,
        quality: float = 8.0,
        timing_ms: int = 4_000,
        cost: float = 0.01,
        pick: str = "candidate-a",
        during: Optional[Callable[[str, str, int], None]] = None,
    ) -> None:
        self.failures = failures or set()
        self.quality = quality
        self.timing_ms = timing_ms
        self.cost = cost
        self.pick = pick
        self.during = during
        self.calls: list[tuple[str, str, int]] = []

    def __call__(self, model: str, profile_id: str, run_index: int) -> TaskResult:
        self.calls.append((model, profile_id, run_index))
        if self.during is not None:
            self.during(model, profile_id, run_index)

        if (model, profile_id, run_index) in self.failures:
            return TaskResult.failed(model, profile_id, run_index, "provider timeout")

        return TaskResult(
            model=model,
            profile_id=profile_id,
            run_index=run_index,
            timing_ms=self.timing_ms,
            cost_estimate=self.cost,
            scores=TaskScores(
                quality=self.quality,
                reasoning=7.0,
                json_validity=10.0,
                balance=6.0,
                robustness=9.0,
            ),
            top_recommendation=self.pick,
            raw_response='{"recommendations": []}',
        )


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def bakeoff_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary bakeoff project directory."""
    from bakeoff.db import init_db

    bakeoff_dir = temp_dir / ".bakeoff"
    bakeoff_dir.mkdir()

    db_path = bakeoff_dir / "bakeoff.db"
    init_db(db_path)

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def db_path(bakeoff_project: Path) -> Path:
    return bakeoff_project / ".bakeoff" / "bakeoff.db"


@pytest.fixture
def db_connection(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    """Get a database connection for the test project."""
    from bakeoff.db import get_connection

    conn = get_connection(db_path)
    yield conn
    conn.close()


@pytest.fixture
def config() -> BakeoffConfig:
    """Defaults with the driver delays zeroed."""
    return BakeoffConfig(step_delay=0, busy_backoff=0, error_backoff=0)


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()
