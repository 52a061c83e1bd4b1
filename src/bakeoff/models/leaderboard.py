# Copyright (c) Syntropy Systems
"""Pydantic models for the ranked scorecard."""

from __future__ import annotations

from typing import Optional

from pydantic import Field

from .base import BakeoffBaseModel
from .experiment import ExperimentSummary


class DimensionScores(BakeoffBaseModel):
    """Per-dimension scores for one model on a 0-10 scale."""

    quality: float = 0.0
    reasoning: float = 0.0
    json_validity: float = 0.0
    balance: float = 0.0
    robustness: float = 0.0
    speed: float = 0.0
    cost: float = 0.0


class LeaderboardEntry(BakeoffBaseModel):
    """Aggregated standing of one model."""

    rank: int = 0
    model: str
    total_calls: int = 0
    successful_calls: int = 0
    error_count: int = 0
    truncated_count: int = 0
    error_rate: float = 0.0
    scores: DimensionScores = Field(default_factory=DimensionScores)
    median_timing_ms: int = 0
    p90_timing_ms: int = 0
    avg_cost: float = 0.0
    total_cost: float = 0.0
    projected_monthly_cost: float = 0.0
    composite_score: float = 0.0


class Leaderboard(BakeoffBaseModel):
    """Models sorted by composite score, best first."""

    entries: list[LeaderboardEntry] = Field(default_factory=list)
    consensus_races: int = 0
    total_results: int = 0
    missing_results: int = 0
    weights: dict[str, float] = Field(default_factory=dict)
    analyzed_at: Optional[str] = None

    @property
    def ranking(self) -> list[str]:
        return [entry.model for entry in self.entries]

    def entry(self, model: str) -> Optional[LeaderboardEntry]:
        """Find the entry for model, if it has any results."""
        for item in self.entries:
            if item.model == model:
                return item
        return None


class ResultsResponse(BakeoffBaseModel):
    """Leaderboard plus the completion summary when one exists."""

    leaderboard: Leaderboard
    summary: Optional[ExperimentSummary] = None
    complete: bool = False
