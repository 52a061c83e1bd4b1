# Copyright (c) Syntropy Systems
"""Tests for leaderboard scoring."""

from __future__ import annotations

import sqlite3
from typing import Optional

import pytest

from bakeoff.config import DEFAULT_WEIGHTS, BakeoffConfig
from bakeoff.db import kv_put, utcnow
from bakeoff.models.experiment import ExperimentSummary, TaskResult, TaskScores
from bakeoff.plan import create_plan
from bakeoff.progress import read_progress, result_key, write_result, write_summary
from bakeoff.scoring import (
    COST_FLOOR,
    COST_TIERS,
    SPEED_FLOOR,
    SPEED_TIERS_MS,
    collect_results,
    compute_leaderboard,
    count_consensus_races,
    get_results,
    median_ms,
    p90_ms,
    score_model,
    tier_score,
)


def make_result(
    model: str = "A",
    profile_id: str = "p1",
    run_index: int = 1,
    score: float = 8.0,
    timing_ms: int = 4_000,
    cost: Optional[float] = 0.01,
    error: Optional[str] = None,
    pick: Optional[str] = None,
    experiment_id: Optional[str] = None,
) -> TaskResult:
    if error is not None:
        result = TaskResult.failed(model, profile_id, run_index, error)
    else:
        result = TaskResult(
            model=model,
            profile_id=profile_id,
            run_index=run_index,
            timing_ms=timing_ms,
            cost_estimate=cost,
            scores=TaskScores(
                quality=score,
                reasoning=score,
                json_validity=score,
                balance=score,
                robustness=score,
            ),
            top_recommendation=pick,
        )
    return result.model_copy(update={"experiment_id": experiment_id})


class TestStatistics:
    """Median, p90 and tier mapping."""

    def test_median_odd(self) -> None:
        assert median_ms([3_000, 1_000, 2_000]) == 2_000

    def test_median_even_averages_middle(self) -> None:
        assert median_ms([4_000, 1_000, 3_000, 2_000]) == 2_500

    def test_median_empty(self) -> None:
        assert median_ms([]) == 0

    def test_p90(self) -> None:
        timings = [i * 1_000 for i in range(1, 11)]
        assert p90_ms(timings) == 10_000
        assert p90_ms([1_000, 2_000, 3_000, 4_000, 5_000]) == 5_000
        assert p90_ms([7_000]) == 7_000
        assert p90_ms([]) == 0

    @pytest.mark.parametrize(
        ("median", "expected"),
        [(4_999, 10), (5_000, 8), (9_999, 8), (19_999, 6), (29_999, 4), (44_999, 2), (45_000, 1)],
    )
    def test_speed_tiers(self, median: int, expected: float) -> None:
        assert tier_score(median, SPEED_TIERS_MS, SPEED_FLOOR) == expected

    @pytest.mark.parametrize(
        ("cost", "expected"),
        [(0.004, 10), (0.005, 8), (0.019, 8), (0.049, 6), (0.099, 4), (0.199, 2), (0.2, 1)],
    )
    def test_cost_tiers(self, cost: float, expected: float) -> None:
        assert tier_score(cost, COST_TIERS, COST_FLOOR) == expected


class TestScoreModel:
    """Per-model aggregation."""

    def test_errors_excluded_from_quality_but_count_for_robustness(self) -> None:
        results = [
            make_result(run_index=1, score=8.0),
            make_result(run_index=2, score=6.0),
            make_result(run_index=3, error="boom"),
            make_result(run_index=4, score=10.0),
        ]

        entry = score_model("A", results, BakeoffConfig())

        assert entry.total_calls == 4
        assert entry.successful_calls == 3
        assert entry.error_count == 1
        assert entry.error_rate == 0.25
        assert entry.scores.quality == pytest.approx(8.0)
        assert entry.scores.robustness == pytest.approx(24.0 / 4)

    def test_no_timing_data_scores_zero_speed(self) -> None:
        entry = score_model("A", [make_result(error="boom")], BakeoffConfig())

        assert entry.scores.speed == 0
        assert entry.scores.cost == 0
        assert entry.median_timing_ms == 0
        assert entry.composite_score == 0

    def test_projected_monthly_cost(self) -> None:
        results = [make_result(run_index=1, cost=0.01), make_result(run_index=2, cost=0.05)]

        entry = score_model("A", results, BakeoffConfig(daily_call_volume=1000))

        assert entry.avg_cost == pytest.approx(0.03)
        assert entry.total_cost == pytest.approx(0.06)
        assert entry.projected_monthly_cost == pytest.approx(900.0)
        assert entry.scores.cost == 6

    def test_composite_uses_weights(self) -> None:
        results = [make_result(score=10.0, timing_ms=1_000, cost=0.001)]

        entry = score_model("A", results, BakeoffConfig())

        assert entry.composite_score == pytest.approx(10.0)

    def test_composite_with_custom_weights(self) -> None:
        weights = {key: 0.0 for key in DEFAULT_WEIGHTS}
        weights["speed"] = 1.0
        results = [make_result(score=2.0, timing_ms=1_000)]

        entry = score_model("A", results, BakeoffConfig(weights=weights))

        assert entry.composite_score == pytest.approx(10.0)

    def test_truncated_counted(self) -> None:
        results = [
            make_result(run_index=1).model_copy(update={"truncated": True}),
            make_result(run_index=2),
        ]

        assert score_model("A", results, BakeoffConfig()).truncated_count == 1


class TestConsensus:
    """Agreement between models on the top pick."""

    def test_supermajority_counts(self) -> None:
        results = [
            make_result("A", "p1", pick="x"),
            make_result("B", "p1", pick="x"),
            make_result("C", "p1", pick="y"),
        ]

        assert count_consensus_races(results, 0.66) == 1

    def test_split_does_not_count(self) -> None:
        results = [
            make_result("A", "p1", pick="x"),
            make_result("B", "p1", pick="y"),
        ]

        assert count_consensus_races(results, 0.66) == 0

    def test_single_voter_does_not_count(self) -> None:
        results = [make_result("A", "p1", 1, pick="x"), make_result("A", "p1", 2, pick="x")]

        assert count_consensus_races(results, 0.66) == 0

    def test_each_model_votes_its_modal_pick(self) -> None:
        results = [
            make_result("A", "p1", 1, pick="x"),
            make_result("A", "p1", 2, pick="x"),
            make_result("A", "p1", 3, pick="y"),
            make_result("B", "p1", 1, pick="x"),
        ]

        assert count_consensus_races(results, 0.66) == 1

    def test_failed_results_do_not_vote(self) -> None:
        results = [
            make_result("A", "p1", pick="x"),
            make_result("B", "p1", error="boom"),
        ]

        assert count_consensus_races(results, 0.66) == 0


class TestLeaderboard:
    """Ranking across models."""

    def test_ranked_by_composite(self) -> None:
        results = [
            make_result("slow", timing_ms=50_000),
            make_result("fast", timing_ms=1_000),
        ]

        board = compute_leaderboard(results, BakeoffConfig())

        assert board.ranking == ["fast", "slow"]
        assert [entry.rank for entry in board.entries] == [1, 2]
        assert board.total_results == 2
        assert board.weights == DEFAULT_WEIGHTS

    def test_ties_keep_first_seen_order(self) -> None:
        results = [make_result("B"), make_result("A"), make_result("C")]

        assert compute_leaderboard(results, BakeoffConfig()).ranking == ["B", "A", "C"]

    def test_empty(self) -> None:
        board = compute_leaderboard([], BakeoffConfig())

        assert board.entries == []
        assert board.consensus_races == 0


class TestCollectResults:
    """Reading results back from the store."""

    def test_partial_results_while_running(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        handle = create_plan(db_connection, ["A"], ["p1"], 2, config)
        write_result(db_connection, make_result(experiment_id=handle.experiment_id), 60)

        response = get_results(db_connection, config)

        assert response.complete is False
        assert response.summary is None
        assert response.leaderboard.total_results == 1
        assert response.leaderboard.missing_results == 1

    def test_stale_results_are_skipped(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        _ = create_plan(db_connection, ["A"], ["p1"], 1, config)
        write_result(db_connection, make_result(experiment_id="an-older-experiment"), 60)

        collected = collect_results(db_connection)

        assert collected.results == []
        assert collected.missing == 1

    def test_corrupt_result_counted_missing(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        _ = create_plan(db_connection, ["A"], ["p1"], 1, config)
        kv_put(db_connection, result_key("A", "p1", 1), {"model": "A"})

        collected = collect_results(db_connection)

        assert collected.results == []
        assert collected.missing == 1

    def test_summary_used_when_progress_gone(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        summary = ExperimentSummary(
            experiment_id="finished",
            total_tasks=2,
            completed_count=2,
            error_count=0,
            started_at=utcnow(),
            completed_at=utcnow(),
            models=["A", "B"],
            profiles=["p1"],
            runs_per_combination=1,
        )
        write_summary(db_connection, summary, 60)
        write_result(db_connection, make_result("A", experiment_id="finished"), 60)
        write_result(db_connection, make_result("B", experiment_id="finished"), 60)

        response = get_results(db_connection, config)

        assert read_progress(db_connection) is None
        assert response.complete is True
        assert response.summary is not None
        assert response.leaderboard.total_results == 2

    def test_summary_of_other_experiment_ignored(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        summary = ExperimentSummary(
            experiment_id="previous",
            total_tasks=1,
            completed_count=1,
            error_count=0,
            started_at=utcnow(),
            completed_at=utcnow(),
        )
        write_summary(db_connection, summary, 60)
        _ = create_plan(db_connection, ["A"], ["p1"], 1, config)

        response = get_results(db_connection, config)

        assert response.complete is False
        assert response.summary is None

    def test_nothing_stored(
        self, db_connection: sqlite3.Connection, config: BakeoffConfig
    ) -> None:
        response = get_results(db_connection, config)

        assert response.leaderboard.entries == []
        assert response.complete is False
