# Copyright (c) Syntropy Systems
"""Repeated-call driver that pushes an experiment to completion."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from bakeoff.client import BakeoffClientError

if TYPE_CHECKING:
    from bakeoff.config import BakeoffConfig
    from bakeoff.models.api import AdvanceResponse

logger = logging.getLogger(__name__)

# Gateway responses from a proxy in front of the server
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})


@dataclass
class DriveReport:
    """What a drive loop saw before it stopped."""

    final_status: str = "stopped"
    advanced: int = 0
    busy: int = 0
    transport_errors: int = 0
    task_errors: list[str] = field(default_factory=list)
    completed_count: Optional[int] = None
    total_tasks: Optional[int] = None


def is_transient(error: BakeoffClientError) -> bool:
    """True if the call never reached the executor and may be retried."""
    return error.status_code is None or error.status_code in RETRYABLE_STATUS_CODES


def drive(
    advance: Callable[[], AdvanceResponse],
    config: BakeoffConfig,
    sleep: Callable[[float], None] = time.sleep,
    max_steps: Optional[int] = None,
    on_step: Optional[Callable[[AdvanceResponse], None]] = None,
) -> DriveReport:
    """
    Call advance until the experiment is complete.

    - advanced: pause ``step_delay`` and continue
    - busy: another caller holds the lease; pause ``busy_backoff``
    - transport failure (connection error, gateway 502/503/504):
      pause ``error_backoff``
    - complete / no_experiment: stop

    Any other BakeoffClientError (401, a 500 from a corrupt record) is
    raised immediately so a human can intervene.

    max_steps bounds the number of advance calls (None = unbounded).
    """
    report = DriveReport()
    steps = 0

    while max_steps is None or steps < max_steps:
        steps += 1
        try:
            response = advance()
        except BakeoffClientError as e:
            if not is_transient(e):
                logger.error("Advance call rejected: %s", e)
                raise
            report.transport_errors += 1
            logger.warning("Advance call failed, retrying in %ss: %s", config.error_backoff, e)
            sleep(config.error_backoff)
            continue

        if on_step is not None:
            on_step(response)

        report.completed_count = response.completed_count
        report.total_tasks = response.total_tasks

        if response.status in ("complete", "no_experiment"):
            report.final_status = response.status
            return report

        if response.status == "busy":
            report.busy += 1
            sleep(config.busy_backoff)
            continue

        report.advanced += 1
        if response.error:
            report.task_errors.append(
                f"{response.current_model} | {response.current_profile} | "
                f"run {response.current_run}: {response.error}"
            )
        sleep(config.step_delay)

    return report
