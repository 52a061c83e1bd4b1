# Copyright (c) Syntropy Systems
"""Turn a comparison request into an ordered task queue."""
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from bakeoff.db import purge_expired, utcnow
from bakeoff.models.experiment import ExperimentHandle, ProgressRecord, Task
from bakeoff.progress import read_progress, write_progress

if TYPE_CHECKING:
    import sqlite3

    from bakeoff.config import BakeoffConfig

logger = logging.getLogger(__name__)

# Rough wall-clock cost of one task plus the driver's pause, in seconds
SECONDS_PER_TASK_ESTIMATE = 17


class ExperimentConflictError(RuntimeError):
    """An experiment is already running over this store."""


def _check_names(kind: str, names: list[str]) -> None:
    if not names:
        msg = f"At least one {kind} is required"
        raise ValueError(msg)
    if len(set(names)) != len(names):
        msg = f"Duplicate {kind} names: {names}"
        raise ValueError(msg)
    for name in names:
        if not name or ":" in name:
            msg = f"Invalid {kind} name {name!r}: must be non-empty and contain no ':'"
            raise ValueError(msg)


def build_queue(models: list[str], profiles: list[str], runs: int) -> list[Task]:
    """Materialize the plan: models, then profiles, then run index 1..runs."""
    _check_names("model", models)
    _check_names("profile", profiles)
    if runs < 1:
        msg = f"runs must be at least 1, got {runs}"
        raise ValueError(msg)

    return [
        Task(model=model, profile_id=profile_id, run_index=run_index)
        for model in models
        for profile_id in profiles
        for run_index in range(1, runs + 1)
    ]


def create_plan(
    conn: sqlite3.Connection,
    models: list[str],
    profiles: list[str],
    runs: int,
    config: BakeoffConfig,
) -> ExperimentHandle:
    """
    Write the initial progress record for a new experiment.

    Refuses to replace an experiment that is running with work still queued.
    A complete or abandoned record is overwritten. No task is run here.
    Expired records left behind by earlier experiments are deleted first.
    """
    queue = build_queue(models, profiles, runs)

    existing = read_progress(conn)
    if existing is not None and existing.status == "running" and existing.queue:
        msg = (
            f"Experiment {existing.experiment_id} is already running "
            f"({existing.completed_count}/{existing.total_tasks} done)"
        )
        raise ExperimentConflictError(msg)

    purged = purge_expired(conn)
    if purged:
        logger.debug("Purged %d expired records", purged)

    progress = ProgressRecord(
        experiment_id=uuid.uuid4().hex,
        status="running",
        total_tasks=len(queue),
        completed_count=0,
        error_count=0,
        started_at=utcnow(),
        queue=queue,
        models=list(models),
        profiles=list(profiles),
        runs_per_combination=runs,
        estimated_minutes=round(len(queue) * SECONDS_PER_TASK_ESTIMATE / 60),
    )
    write_progress(conn, progress, config.progress_ttl_seconds)

    logger.info(
        "Created experiment %s: %d models x %d profiles x %d runs = %d tasks",
        progress.experiment_id, len(models), len(profiles), runs, len(queue),
    )
    return ExperimentHandle(experiment_id=progress.experiment_id, total_tasks=len(queue))
