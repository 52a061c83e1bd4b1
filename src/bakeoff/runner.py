# Copyright (c) Syntropy Systems
"""Task runners: the boundary between the orchestrator and model providers."""
from __future__ import annotations

import ctypes
import json
import os
import signal
import subprocess
import sys
import time
from typing import TYPE_CHECKING, Protocol, cast

from pydantic import ValidationError

from bakeoff.models.experiment import TaskResult
from bakeoff.pricing import estimate_cost, estimate_tokens

if TYPE_CHECKING:
    from pathlib import Path


class TaskRunner(Protocol):
    """Runs one (model, profile, run) comparison call.

    Failures should be reported through ``TaskResult.error``; an exception
    raised here is also recorded as a task failure by the executor.
    """

    def __call__(self, model: str, profile_id: str, run_index: int) -> TaskResult:
        ...


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so the task command dies with its parent.

    Only works on Linux.
    """
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        return


def _parse_output(stdout: str) -> dict[str, object]:
    """Decode the JSON object a task command printed.

    The whole of stdout is tried first, then its last non-empty line, so
    commands may log freely before printing the result.
    """
    text = stdout.strip()
    if not text:
        msg = "Task command printed nothing"
        raise ValueError(msg)

    candidates = [text, text.splitlines()[-1]]
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return cast("dict[str, object]", data)

    msg = "Task command output is not a JSON object"
    raise ValueError(msg)


def _fill_cost(model: str, data: dict[str, object]) -> None:
    """Estimate cost_estimate from token counts when the command gave none."""
    if data.get("cost_estimate") is not None:
        return

    input_tokens = data.get("input_tokens")
    output_tokens = data.get("output_tokens")
    raw_response = data.get("raw_response")
    if not isinstance(output_tokens, int) and isinstance(raw_response, str):
        output_tokens = estimate_tokens(raw_response)

    if isinstance(input_tokens, int) or isinstance(output_tokens, int):
        data["cost_estimate"] = estimate_cost(
            model,
            input_tokens if isinstance(input_tokens, int) else 0,
            output_tokens if isinstance(output_tokens, int) else 0,
        )


class CommandTaskRunner:
    """Runs an external command once per task and reads its JSON verdict.

    The command sees BAKEOFF_MODEL, BAKEOFF_PROFILE and BAKEOFF_RUN in its
    environment and prints a JSON object with any TaskResult fields
    (``scores``, ``cost_estimate``, ``truncated``, ``error``,
    ``top_recommendation``, ``raw_response``) plus optional
    ``input_tokens``/``output_tokens`` for cost estimation.
    """

    command_argv: list[str]
    timeout: float
    workdir: Path | None
    env: dict[str, str]

    def __init__(
        self,
        command_argv: list[str],
        timeout: float = 90.0,
        workdir: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        if not command_argv:
            msg = "command_argv must not be empty"
            raise ValueError(msg)
        self.command_argv = command_argv
        self.timeout = timeout
        self.workdir = workdir

        self.env = os.environ.copy()
        if env:
            self.env.update(env)

    def __call__(self, model: str, profile_id: str, run_index: int) -> TaskResult:
        env = dict(self.env)
        env.update(
            {
                "BAKEOFF_MODEL": model,
                "BAKEOFF_PROFILE": profile_id,
                "BAKEOFF_RUN": str(run_index),
            }
        )

        start = time.monotonic()
        try:
            completed = subprocess.run(  # noqa: S603
                self.command_argv,
                capture_output=True,
                text=True,
                env=env,
                cwd=str(self.workdir) if self.workdir else None,
                timeout=self.timeout,
                check=False,
                start_new_session=True,
                preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except subprocess.TimeoutExpired:
            return TaskResult.failed(
                model, profile_id, run_index,
                f"Timed out after {self.timeout:g}s",
                timing_ms=int((time.monotonic() - start) * 1000),
            )
        except OSError as e:
            return TaskResult.failed(model, profile_id, run_index, f"Could not start task command: {e}")

        timing_ms = int((time.monotonic() - start) * 1000)

        if completed.returncode != 0:
            stderr_lines = completed.stderr.strip().splitlines()
            detail = stderr_lines[-1] if stderr_lines else "no output"
            return TaskResult.failed(
                model, profile_id, run_index,
                f"Task command exited with {completed.returncode}: {detail}",
                timing_ms=timing_ms,
            )

        try:
            data = _parse_output(completed.stdout)
        except ValueError as e:
            return TaskResult.failed(model, profile_id, run_index, str(e), timing_ms=timing_ms)

        data.setdefault("timing_ms", timing_ms)
        _fill_cost(model, data)
        data.update({"model": model, "profile_id": profile_id, "run_index": run_index})

        try:
            return TaskResult.model_validate(data)
        except ValidationError as e:
            return TaskResult.failed(
                model, profile_id, run_index,
                f"Malformed task output: {e.error_count()} validation error(s)",
                timing_ms=timing_ms,
            )
