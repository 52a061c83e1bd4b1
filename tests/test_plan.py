# Copyright (c) Syntropy Systems
"""Tests for experiment planning."""

import sqlite3

import pytest

from bakeoff.config import BakeoffConfig
from bakeoff.db import kv_put
from bakeoff.models.experiment import Task
from bakeoff.plan import ExperimentConflictError, build_queue, create_plan
from bakeoff.progress import read_progress, write_progress


class TestBuildQueue:
    """Queue order and validation."""

    def test_order_is_model_then_profile_then_run(self) -> None:
        queue = build_queue(["A", "B"], ["p1", "p2"], 2)

        assert [(t.model, t.profile_id, t.run_index) for t in queue] == [
            ("A", "p1", 1), ("A", "p1", 2), ("A", "p2", 1), ("A", "p2", 2),
            ("B", "p1", 1), ("B", "p1", 2), ("B", "p2", 1), ("B", "p2", 2),
        ]

    def test_single_combination(self) -> None:
        assert build_queue(["A"], ["p1"], 1) == [Task(model="A", profile_id="p1", run_index=1)]

    @pytest.mark.parametrize(
        ("models", "profiles", "runs"),
        [
            ([], ["p1"], 1),
            (["A"], [], 1),
            (["A"], ["p1"], 0),
            (["A", "A"], ["p1"], 1),
            (["A:B"], ["p1"], 1),
            ([""], ["p1"], 1),
        ],
    )
    def test_invalid_plans_rejected(
        self, models: list[str], profiles: list[str], runs: int
    ) -> None:
        with pytest.raises(ValueError):
            _ = build_queue(models, profiles, runs)


class TestCreatePlan:
    """Tests for writing a new progress record."""

    def test_create_plan_writes_progress(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        handle = create_plan(db_connection, ["A", "B"], ["p1", "p2"], 3, config)

        assert handle.total_tasks == 12
        progress = read_progress(db_connection)
        assert progress is not None
        assert progress.experiment_id == handle.experiment_id
        assert progress.status == "running"
        assert progress.total_tasks == 12
        assert progress.completed_count == 0
        assert progress.error_count == 0
        assert len(progress.queue) == 12
        assert progress.models == ["A", "B"]
        assert progress.profiles == ["p1", "p2"]
        assert progress.runs_per_combination == 3
        assert progress.current_model is None

    def test_estimate_scales_with_tasks(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        _ = create_plan(db_connection, ["A", "B", "C"], ["p1", "p2", "p3", "p4"], 5, config)

        progress = read_progress(db_connection)
        assert progress is not None
        # 60 tasks at ~17s each
        assert progress.estimated_minutes == 17

    def test_conflict_while_running(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        first = create_plan(db_connection, ["A"], ["p1"], 2, config)

        with pytest.raises(ExperimentConflictError):
            _ = create_plan(db_connection, ["B"], ["p2"], 1, config)

        progress = read_progress(db_connection)
        assert progress is not None
        assert progress.experiment_id == first.experiment_id
        assert progress.models == ["A"]

    def test_complete_experiment_is_replaced(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        first = create_plan(db_connection, ["A"], ["p1"], 1, config)
        progress = read_progress(db_connection)
        assert progress is not None
        progress.status = "complete"
        progress.queue = []
        write_progress(db_connection, progress, config.progress_ttl_seconds)

        second = create_plan(db_connection, ["B"], ["p2"], 2, config)

        assert second.experiment_id != first.experiment_id
        progress = read_progress(db_connection)
        assert progress is not None
        assert progress.models == ["B"]
        assert progress.total_tasks == 2

    def test_invalid_plan_leaves_store_untouched(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        with pytest.raises(ValueError):
            _ = create_plan(db_connection, ["A"], ["p1"], 0, config)

        assert read_progress(db_connection) is None

    def test_create_plan_purges_expired_records(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        kv_put(db_connection, "experiment:result:A:p1:1", {"model": "A"}, 60)
        kv_put(db_connection, "experiment:summary", {"experiment_id": "old"}, 60)
        _ = db_connection.execute("UPDATE kv SET expires_at = 1")

        _ = create_plan(db_connection, ["A"], ["p1"], 1, config)

        rows = db_connection.execute("SELECT key FROM kv").fetchall()
        assert [row["key"] for row in rows] == ["experiment:progress"]
