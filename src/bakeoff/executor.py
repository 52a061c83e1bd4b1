# Copyright (c) Syntropy Systems
"""Advance an experiment by exactly one task per call.

There is no background worker. A driver calls ``advance_one`` repeatedly;
each call claims the lease, runs the task at ``queue[completed_count]``,
records its result and moves the counter. Progress is persisted after every
task, so a driver that disappears loses at most the task in flight.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Optional

from bakeoff.db import kv_get, now_ms, purge_expired, utcnow
from bakeoff.models.api import AdvanceResponse
from bakeoff.models.experiment import ExperimentSummary, ProgressRecord, Task, TaskResult
from bakeoff.progress import (
    LOCK_KEY,
    abort_experiment,
    read_progress,
    release_lease,
    try_acquire_lease,
    write_progress,
    write_result,
    write_summary,
)

if TYPE_CHECKING:
    import sqlite3

    from bakeoff.config import BakeoffConfig
    from bakeoff.runner import TaskRunner

logger = logging.getLogger(__name__)

__all__ = ["StepOutcome", "abort_experiment", "advance_one"]

StepKind = Literal["no_experiment", "busy", "complete", "advanced"]


@dataclass
class StepOutcome:
    """Caller-visible result of one advance call."""

    kind: StepKind
    completed_count: Optional[int] = None
    total_tasks: Optional[int] = None
    task: Optional[Task] = None
    error: Optional[str] = None

    @classmethod
    def from_progress(
        cls, kind: StepKind, progress: Optional[ProgressRecord]
    ) -> StepOutcome:
        if progress is None:
            return cls(kind=kind)
        return cls(
            kind=kind,
            completed_count=progress.completed_count,
            total_tasks=progress.total_tasks,
        )

    def to_response(self) -> AdvanceResponse:
        """Shape the outcome for the control surface."""
        return AdvanceResponse(
            status=self.kind,
            completed_count=self.completed_count,
            total_tasks=self.total_tasks,
            current_model=self.task.model if self.task else None,
            current_profile=self.task.profile_id if self.task else None,
            current_run=self.task.run_index if self.task else None,
            error=self.error,
        )


def _elapsed_ms(started_at: str, finished_at: str) -> int:
    try:
        start = datetime.fromisoformat(started_at.replace("Z", "+00:00"))
        end = datetime.fromisoformat(finished_at.replace("Z", "+00:00"))
    except ValueError:
        return 0
    return max(int((end - start).total_seconds() * 1000), 0)


def _finalize(
    conn: sqlite3.Connection, progress: ProgressRecord, config: BakeoffConfig
) -> None:
    """Write the summary and mark progress complete (caller persists progress)."""
    completed_at = utcnow()
    summary = ExperimentSummary(
        experiment_id=progress.experiment_id,
        total_tasks=progress.total_tasks,
        completed_count=progress.completed_count,
        error_count=progress.error_count,
        started_at=progress.started_at,
        completed_at=completed_at,
        elapsed_ms=_elapsed_ms(progress.started_at, completed_at),
        models=progress.models,
        profiles=progress.profiles,
        runs_per_combination=progress.runs_per_combination,
    )
    write_summary(conn, summary, config.result_ttl_seconds)
    purge_expired(conn)

    progress.status = "complete"
    progress.completed_at = completed_at
    progress.queue = []
    logger.info(
        "Experiment %s complete: %d tasks, %d errors",
        progress.experiment_id, progress.completed_count, progress.error_count,
    )


def _run_task(run_task: TaskRunner, task: Task, experiment_id: str) -> TaskResult:
    """Call the task runner, turning any exception into an errored result."""
    try:
        result = run_task(task.model, task.profile_id, task.run_index)
    except Exception as exc:
        logger.exception(
            "Task runner raised for %s | %s | run %d",
            task.model, task.profile_id, task.run_index,
        )
        result = TaskResult.failed(
            task.model, task.profile_id, task.run_index, f"{type(exc).__name__}: {exc}"
        )

    return result.model_copy(
        update={
            "experiment_id": experiment_id,
            "model": task.model,
            "profile_id": task.profile_id,
            "run_index": task.run_index,
            "recorded_at": utcnow(),
        }
    )


def _release_own_lease(conn: sqlite3.Connection, claimed_at: int) -> None:
    """Release the lease unless someone else has since reclaimed it."""
    if kv_get(conn, LOCK_KEY) == claimed_at:
        release_lease(conn)


def advance_one(
    conn: sqlite3.Connection,
    run_task: TaskRunner,
    config: BakeoffConfig,
    now: Optional[int] = None,
) -> StepOutcome:
    """
    Run the next queued task and record it.

    Returns:
        no_experiment: nothing to advance (no record, or it vanished mid-step)
        busy: another caller holds a live lease, or advanced the experiment
            while this call's task ran; nothing was recorded
        complete: the experiment is finished
        advanced: one task was run and recorded

    Store errors propagate. Progress is only written after the reads it
    depends on have succeeded, so a failed call leaves the queue position
    unchanged.
    """
    progress = read_progress(conn)
    if progress is None:
        return StepOutcome(kind="no_experiment")
    if progress.status == "complete":
        return StepOutcome.from_progress("complete", progress)
    if progress.status != "running":
        return StepOutcome.from_progress("no_experiment", progress)

    claimed_at = now if now is not None else now_ms()
    if not try_acquire_lease(
        conn, config.lease_duration_ms, config.progress_ttl_seconds, now=claimed_at
    ):
        logger.debug("Lease held by another caller")
        return StepOutcome.from_progress("busy", progress)

    try:
        # Another holder may have moved the record between our read and the claim
        progress = read_progress(conn)
        if progress is None:
            return StepOutcome(kind="no_experiment")
        if progress.status == "complete":
            return StepOutcome.from_progress("complete", progress)
        if progress.status != "running":
            return StepOutcome.from_progress("no_experiment", progress)

        if progress.completed_count >= progress.total_tasks:
            _finalize(conn, progress, config)
            write_progress(conn, progress, config.progress_ttl_seconds)
            return StepOutcome.from_progress("complete", progress)

        task = progress.next_task()
        progress.current_model = task.model
        progress.current_profile = task.profile_id
        progress.current_run = task.run_index
        write_progress(conn, progress, config.progress_ttl_seconds)

        logger.info(
            "%s | %s | run %d (%d/%d)",
            task.model, task.profile_id, task.run_index,
            progress.completed_count + 1, progress.total_tasks,
        )
        result = _run_task(run_task, task, progress.experiment_id)
        if result.error:
            logger.warning(
                "Task failed: %s | %s | run %d: %s",
                task.model, task.profile_id, task.run_index, result.error,
            )

        latest = read_progress(conn)
        if latest is None or latest.experiment_id != progress.experiment_id:
            logger.warning(
                "Experiment %s was aborted while %s | %s | run %d ran; result discarded",
                progress.experiment_id, task.model, task.profile_id, task.run_index,
            )
            return StepOutcome(kind="no_experiment")
        if latest.completed_count != progress.completed_count:
            # Lease expired mid-task and another caller moved the counter
            logger.warning(
                "Experiment %s moved to %d/%d while %s | %s | run %d ran; result discarded",
                latest.experiment_id, latest.completed_count, latest.total_tasks,
                task.model, task.profile_id, task.run_index,
            )
            return StepOutcome.from_progress("busy", latest)

        write_result(conn, result, config.result_ttl_seconds)

        progress.completed_count += 1
        if result.error:
            progress.error_count += 1

        if progress.completed_count >= progress.total_tasks:
            _finalize(conn, progress, config)

        write_progress(conn, progress, config.progress_ttl_seconds)

        return StepOutcome(
            kind="advanced",
            completed_count=progress.completed_count,
            total_tasks=progress.total_tasks,
            task=task,
            error=result.error,
        )
    finally:
        _release_own_lease(conn, claimed_at)
