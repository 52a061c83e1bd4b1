# Copyright (c) Syntropy Systems
"""Progress record, lease, and result storage on top of the key-value store.

Every operation reads a full record, computes the next value, and writes the
full record back. Nothing is held in process memory between calls.

The lease is a timestamp under ``experiment:lock``. A lease younger than the
configured duration means another caller is advancing the experiment; an
older one is treated as abandoned and may be reclaimed. This gives at most one
believed-healthy holder at a time and heals itself after a crash, at the cost
of possibly running a crashed step twice.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from bakeoff.db import CorruptRecordError, kv_delete, kv_get, kv_put, now_ms
from bakeoff.models.experiment import ExperimentSummary, ProgressRecord, TaskResult

logger = logging.getLogger(__name__)

PROGRESS_KEY = "experiment:progress"
LOCK_KEY = "experiment:lock"
SUMMARY_KEY = "experiment:summary"
RESULT_PREFIX = "experiment:result:"

RecordModel = TypeVar("RecordModel", bound=BaseModel)


def result_key(model: str, profile_id: str, run_index: int) -> str:
    """Storage key for one task result."""
    return f"{RESULT_PREFIX}{model}:{profile_id}:{run_index}"


def _read_model(
    conn: sqlite3.Connection, key: str, model_cls: type[RecordModel]
) -> Optional[RecordModel]:
    data = kv_get(conn, key)
    if data is None:
        return None
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise CorruptRecordError(key, str(e)) from e


# --- Progress ---

def read_progress(conn: sqlite3.Connection) -> Optional[ProgressRecord]:
    """Read the current progress record, or None if no experiment exists."""
    return _read_model(conn, PROGRESS_KEY, ProgressRecord)


def write_progress(
    conn: sqlite3.Connection, progress: ProgressRecord, ttl_seconds: int
) -> None:
    """Write the full progress record."""
    kv_put(conn, PROGRESS_KEY, progress.model_dump(mode="json"), ttl_seconds)


# --- Lease ---

def _claimed_at(held: object) -> Optional[int]:
    """Claim timestamp of a stored lease, or None if it is not a timestamp."""
    if isinstance(held, bool) or not isinstance(held, (int, float, str)):
        return None
    try:
        return int(held)
    except ValueError:
        return None


def try_acquire_lease(
    conn: sqlite3.Connection,
    lease_duration_ms: int,
    ttl_seconds: int = 86_400,
    now: Optional[int] = None,
) -> bool:
    """
    Try to claim the right to advance the experiment.

    Returns True if the lock was absent or abandoned (age >= lease_duration_ms)
    and has now been written with the current timestamp. Returns False if
    another caller holds a live lease; the caller must back off.

    The read and the write run inside one immediate transaction so two
    connections to the same store cannot both observe the lock as free.
    """
    if now is None:
        now = now_ms()

    try:
        conn.execute("BEGIN IMMEDIATE")

        held = kv_get(conn, LOCK_KEY)
        if held is not None:
            claimed_at = _claimed_at(held)
            if claimed_at is not None and now - claimed_at < lease_duration_ms:
                conn.execute("COMMIT")
                return False
            logger.warning("Reclaiming abandoned lease claimed at %s", held)

        kv_put(conn, LOCK_KEY, now, ttl_seconds)
        conn.execute("COMMIT")
        return True
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        raise


def release_lease(conn: sqlite3.Connection) -> None:
    """Release the lease so the next caller need not wait it out."""
    kv_delete(conn, LOCK_KEY)


def read_lease(conn: sqlite3.Connection) -> Optional[int]:
    """Return the claim timestamp of the current lease, if any."""
    held = kv_get(conn, LOCK_KEY)
    if held is None:
        return None
    return _claimed_at(held)


# --- Summary and results ---

def read_summary(conn: sqlite3.Connection) -> Optional[ExperimentSummary]:
    """Read the completion summary, if one has been written."""
    return _read_model(conn, SUMMARY_KEY, ExperimentSummary)


def write_summary(
    conn: sqlite3.Connection, summary: ExperimentSummary, ttl_seconds: int
) -> None:
    kv_put(conn, SUMMARY_KEY, summary.model_dump(mode="json"), ttl_seconds)


def read_result(
    conn: sqlite3.Connection, model: str, profile_id: str, run_index: int
) -> Optional[TaskResult]:
    """Read one stored task result."""
    return _read_model(conn, result_key(model, profile_id, run_index), TaskResult)


def write_result(
    conn: sqlite3.Connection, result: TaskResult, ttl_seconds: int
) -> None:
    """Persist a task result without its raw response body."""
    kv_put(
        conn,
        result_key(result.model, result.profile_id, result.run_index),
        result.model_dump(mode="json", exclude={"raw_response"}),
        ttl_seconds,
    )


# --- Abort ---

def abort_experiment(conn: sqlite3.Connection) -> None:
    """Delete the progress record and lease unconditionally."""
    kv_delete(conn, PROGRESS_KEY)
    kv_delete(conn, LOCK_KEY)
    logger.info("Experiment state cleared")
