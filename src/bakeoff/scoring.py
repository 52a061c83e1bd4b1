# Copyright (c) Syntropy Systems
"""Aggregate stored task results into a ranked leaderboard.

Per model:

- quality, reasoning, json_validity, balance: mean over successful results.
- robustness: per-call robustness averaged over *all* calls, with failed
  calls counting as zero, so a flakier model scores lower.
- speed: median and p90 latency of successful calls, mapped to a 0-10 tier.
- cost: mean cost of successful calls, mapped to a 0-10 tier (cheaper is
  better), plus a projected monthly spend.
- composite: weighted sum of the seven dimension scores using
  ``BakeoffConfig.weights`` (see ``bakeoff.config.DEFAULT_WEIGHTS``).
"""
from __future__ import annotations

import logging
import math
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from bakeoff.db import CorruptRecordError, utcnow
from bakeoff.models.leaderboard import (
    DimensionScores,
    Leaderboard,
    LeaderboardEntry,
    ResultsResponse,
)
from bakeoff.progress import read_progress, read_result, read_summary

if TYPE_CHECKING:
    import sqlite3

    from bakeoff.config import BakeoffConfig
    from bakeoff.models.experiment import ExperimentSummary, ProgressRecord, TaskResult

logger = logging.getLogger(__name__)

QUALITY_DIMENSIONS = ("quality", "reasoning", "json_validity", "balance")

# (upper bound exclusive, score); anything slower or pricier gets the floor
SPEED_TIERS_MS: tuple[tuple[int, float], ...] = (
    (5_000, 10),
    (10_000, 8),
    (20_000, 6),
    (30_000, 4),
    (45_000, 2),
)
SPEED_FLOOR = 1.0

COST_TIERS: tuple[tuple[float, float], ...] = (
    (0.005, 10),
    (0.02, 8),
    (0.05, 6),
    (0.10, 4),
    (0.20, 2),
)
COST_FLOOR = 1.0

DAYS_PER_MONTH = 30


def tier_score(value: float, tiers: tuple[tuple[float, float], ...], floor: float) -> float:
    """Map value onto the first tier whose bound it falls under."""
    for bound, score in tiers:
        if value < bound:
            return float(score)
    return floor


def median_ms(timings: list[int]) -> int:
    """Median of timings; the two middle values are averaged and rounded."""
    if not timings:
        return 0
    ordered = sorted(timings)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return round((ordered[mid - 1] + ordered[mid]) / 2)
    return ordered[mid]


def p90_ms(timings: list[int]) -> int:
    if not timings:
        return 0
    ordered = sorted(timings)
    return ordered[min(math.floor(len(ordered) * 0.9), len(ordered) - 1)]


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def score_model(
    model: str, results: list[TaskResult], config: BakeoffConfig
) -> LeaderboardEntry:
    """Aggregate one model's results into an unranked entry."""
    successes = [r for r in results if r.succeeded]
    total_calls = len(results)

    scores = DimensionScores()
    for dimension in QUALITY_DIMENSIONS:
        value = _mean([getattr(r.scores, dimension) for r in successes])
        setattr(scores, dimension, round(value, 2))

    if total_calls:
        scores.robustness = round(
            sum(r.scores.robustness for r in successes) / total_calls, 2
        )

    timings = [r.timing_ms for r in successes if r.timing_ms > 0]
    median = median_ms(timings)
    if timings:
        scores.speed = tier_score(median, SPEED_TIERS_MS, SPEED_FLOOR)

    costs = [r.cost_estimate for r in successes if r.cost_estimate is not None]
    avg_cost = _mean(costs)
    if costs:
        scores.cost = tier_score(avg_cost, COST_TIERS, COST_FLOOR)

    composite = sum(
        weight * getattr(scores, dimension) for dimension, weight in config.weights.items()
    )
    error_count = total_calls - len(successes)

    return LeaderboardEntry(
        model=model,
        total_calls=total_calls,
        successful_calls=len(successes),
        error_count=error_count,
        truncated_count=sum(1 for r in results if r.truncated),
        error_rate=round(error_count / total_calls, 4) if total_calls else 0.0,
        scores=scores,
        median_timing_ms=median,
        p90_timing_ms=p90_ms(timings),
        avg_cost=round(avg_cost, 6),
        total_cost=round(sum(costs), 6),
        projected_monthly_cost=round(avg_cost * config.daily_call_volume * DAYS_PER_MONTH, 2),
        composite_score=round(composite, 2),
    )


def count_consensus_races(results: list[TaskResult], threshold: float) -> int:
    """Count profiles where a supermajority of models chose the same pick.

    Each model votes once per profile with its most frequent
    ``top_recommendation`` across runs. A profile needs at least two voting
    models, and the leading pick's share of votes must reach threshold.
    """
    picks: defaultdict[tuple[str, str], Counter[str]] = defaultdict(Counter)
    for result in results:
        if result.succeeded and result.top_recommendation:
            picks[(result.profile_id, result.model)][result.top_recommendation] += 1

    votes: defaultdict[str, Counter[str]] = defaultdict(Counter)
    for (profile_id, _model), counter in picks.items():
        top_pick, _ = counter.most_common(1)[0]
        votes[profile_id][top_pick] += 1

    races = 0
    for counter in votes.values():
        voters = sum(counter.values())
        _, leading = counter.most_common(1)[0]
        if voters >= 2 and leading / voters >= threshold:
            races += 1
    return races


def compute_leaderboard(
    results: list[TaskResult],
    config: BakeoffConfig,
    missing_results: int = 0,
) -> Leaderboard:
    """Rank models by composite score, best first.

    Ties keep the order in which models first appear in results.
    """
    by_model: dict[str, list[TaskResult]] = {}
    for result in results:
        by_model.setdefault(result.model, []).append(result)

    entries = [score_model(model, items, config) for model, items in by_model.items()]
    entries.sort(key=lambda entry: entry.composite_score, reverse=True)
    for rank, entry in enumerate(entries, 1):
        entry.rank = rank

    return Leaderboard(
        entries=entries,
        consensus_races=count_consensus_races(results, config.consensus_threshold),
        total_results=len(results),
        missing_results=missing_results,
        weights=dict(config.weights),
        analyzed_at=utcnow(),
    )


@dataclass
class CollectedResults:
    """Stored results for the current experiment and what is missing."""

    results: list[TaskResult] = field(default_factory=list)
    missing: int = 0
    summary: Optional[ExperimentSummary] = None
    progress: Optional[ProgressRecord] = None


def collect_results(conn: sqlite3.Connection) -> CollectedResults:
    """
    Read every stored result of the current experiment.

    The key space comes from the progress record when one exists (partial
    results while running) and from the summary otherwise (the progress
    record may have expired). Results left over from an earlier experiment
    with the same key are skipped.
    """
    progress = read_progress(conn)
    summary = read_summary(conn)

    if progress is not None:
        experiment_id = progress.experiment_id
        models, profiles, runs = progress.models, progress.profiles, progress.runs_per_combination
        if summary is not None and summary.experiment_id != experiment_id:
            summary = None
    elif summary is not None:
        experiment_id = summary.experiment_id
        models, profiles, runs = summary.models, summary.profiles, summary.runs_per_combination
    else:
        return CollectedResults()

    collected = CollectedResults(summary=summary, progress=progress)
    for model in models:
        for profile_id in profiles:
            for run_index in range(1, runs + 1):
                try:
                    result = read_result(conn, model, profile_id, run_index)
                except CorruptRecordError as e:
                    logger.warning("Skipping unreadable result: %s", e)
                    collected.missing += 1
                    continue

                if result is None or (
                    result.experiment_id is not None and result.experiment_id != experiment_id
                ):
                    collected.missing += 1
                    continue
                collected.results.append(result)

    return collected


def get_results(conn: sqlite3.Connection, config: BakeoffConfig) -> ResultsResponse:
    """Leaderboard over whatever results exist, plus the summary if finished."""
    collected = collect_results(conn)
    leaderboard = compute_leaderboard(collected.results, config, collected.missing)
    return ResultsResponse(
        leaderboard=leaderboard,
        summary=collected.summary,
        complete=collected.summary is not None,
    )
