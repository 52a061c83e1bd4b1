# Copyright (c) Syntropy Systems
"""Pydantic models for bakeoff API requests and responses."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from .base import BakeoffBaseModel

StepStatus = Literal["no_experiment", "busy", "complete", "advanced"]


class ExperimentCreate(BakeoffBaseModel):
    """Request to create an experiment plan."""

    models: list[str] = Field(min_length=1)
    profiles: list[str] = Field(min_length=1)
    runs: int = Field(default=3, ge=1, le=100)


class ExperimentCreateResponse(BakeoffBaseModel):
    """Response from creating an experiment."""

    experiment_id: str
    total_tasks: int
    message: str


class AdvanceResponse(BakeoffBaseModel):
    """Outcome of one advance call."""

    status: StepStatus
    completed_count: int | None = None
    total_tasks: int | None = None
    current_model: str | None = None
    current_profile: str | None = None
    current_run: int | None = None
    error: str | None = None


class ResetResponse(BakeoffBaseModel):
    """Response from aborting an experiment."""

    status: Literal["reset"] = "reset"


class ErrorResponse(BakeoffBaseModel):
    """Error response."""

    detail: str
    error_code: str | None = None


class HealthResponse(BakeoffBaseModel):
    """Health check response."""

    status: str
