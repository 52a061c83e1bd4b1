# Copyright (c) Syntropy Systems
"""Pydantic models for experiment state kept in the store."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from .base import BakeoffBaseModel

ExperimentStatus = Literal["not_started", "running", "complete"]


class Task(BakeoffBaseModel):
    """One (model, profile, run) unit of evaluation work."""

    model: str
    profile_id: str
    run_index: int = Field(ge=1)


class ProgressRecord(BakeoffBaseModel):
    """The single read-modify-write record describing an experiment."""

    experiment_id: str
    status: ExperimentStatus = "not_started"
    total_tasks: int = Field(ge=0)
    completed_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)
    started_at: str
    completed_at: Optional[str] = None
    current_model: Optional[str] = None
    current_profile: Optional[str] = None
    current_run: Optional[int] = None
    queue: list[Task] = Field(default_factory=list)
    models: list[str] = Field(default_factory=list)
    profiles: list[str] = Field(default_factory=list)
    runs_per_combination: int = 1
    estimated_minutes: int = 0

    def next_task(self) -> Task:
        """Return the task at the current queue position."""
        return self.queue[self.completed_count]


class TaskScores(BakeoffBaseModel):
    """Rubric scores for one model response, each on a 0-10 scale."""

    quality: float = Field(default=0.0, ge=0, le=10)
    reasoning: float = Field(default=0.0, ge=0, le=10)
    json_validity: float = Field(default=0.0, ge=0, le=10)
    balance: float = Field(default=0.0, ge=0, le=10)
    robustness: float = Field(default=0.0, ge=0, le=10)


class TaskResult(BakeoffBaseModel):
    """Outcome of one task, successful or not. Never mutated once stored."""

    experiment_id: Optional[str] = None
    model: str
    profile_id: str
    run_index: int
    timing_ms: int = 0
    cost_estimate: Optional[float] = None
    scores: TaskScores = Field(default_factory=TaskScores)
    truncated: bool = False
    error: Optional[str] = None
    top_recommendation: Optional[str] = None
    recorded_at: Optional[str] = None

    # Raw provider output; dropped before the result is persisted
    raw_response: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def failed(
        cls,
        model: str,
        profile_id: str,
        run_index: int,
        error: str,
        timing_ms: int = 0,
    ) -> TaskResult:
        """Build a result that records only an error."""
        return cls(
            model=model,
            profile_id=profile_id,
            run_index=run_index,
            timing_ms=timing_ms,
            error=error,
        )


class ExperimentSummary(BakeoffBaseModel):
    """Written once when an experiment finishes."""

    experiment_id: str
    total_tasks: int
    completed_count: int
    error_count: int
    started_at: str
    completed_at: str
    elapsed_ms: int = 0
    models: list[str] = Field(default_factory=list)
    profiles: list[str] = Field(default_factory=list)
    runs_per_combination: int = 1


class ExperimentHandle(BakeoffBaseModel):
    """Returned when a plan is created."""

    experiment_id: str
    total_tasks: int
