# Copyright (c) Syntropy Systems
"""FastAPI application for the bakeoff server.

The server keeps no state between requests: each request opens its own
store connection, and experiments only move when a client calls advance.
"""

import logging
import os
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from ..config import BakeoffConfig, load_config
from ..db import CorruptRecordError, get_connection, init_db
from ..executor import abort_experiment, advance_one
from ..models.api import (
    AdvanceResponse,
    ExperimentCreate,
    ExperimentCreateResponse,
    HealthResponse,
    ResetResponse,
)
from ..models.base import JSONValue
from ..models.leaderboard import ResultsResponse
from ..plan import ExperimentConflictError, create_plan
from ..progress import read_progress
from ..runner import CommandTaskRunner, TaskRunner
from ..scoring import get_results

logger = logging.getLogger(__name__)


def create_app(
    db_path: Optional[Path] = None,
    config: Optional[BakeoffConfig] = None,
    task_runner: Optional[TaskRunner] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        db_path: SQLite store path (defaults to $BAKEOFF_DATA_DIR/bakeoff.db)
        config: Orchestrator configuration (defaults to load_config())
        task_runner: Runs one task per advance call (defaults to a
            CommandTaskRunner built from config.task_command)

    Returns:
        Configured FastAPI application
    """
    if db_path is None:
        data_dir = os.environ.get("BAKEOFF_DATA_DIR")
        if not data_dir:
            raise ValueError("No database configuration provided")
        db_path = Path(data_dir) / "bakeoff.db"

    if config is None:
        config = load_config()

    if task_runner is None and config.task_command:
        task_runner = CommandTaskRunner(config.task_command, timeout=config.task_timeout)

    init_db(db_path)

    app = FastAPI(
        title="bakeoff server",
        description="Model comparison experiment orchestration",
        version="0.1.0",
    )
    app.state.db_path = db_path
    app.state.config = config

    def get_conn() -> Iterator[sqlite3.Connection]:
        conn = get_connection(db_path)
        try:
            yield conn
        finally:
            conn.close()

    def require_token(authorization: Optional[str] = Header(None)) -> None:
        if config.admin_token is None:
            return
        if authorization != f"Bearer {config.admin_token}":
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.exception_handler(CorruptRecordError)
    def corrupt_record_handler(request: Request, exc: CorruptRecordError) -> JSONResponse:
        logger.error("Corrupt record on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "error_code": "corrupt_record"},
        )

    @app.exception_handler(sqlite3.Error)
    def store_error_handler(request: Request, exc: sqlite3.Error) -> JSONResponse:
        logger.error("Store error on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=500,
            content={"detail": f"Store error: {exc}", "error_code": "store_unavailable"},
        )

    # --- Experiment Endpoints ---

    @app.post(
        "/api/v1/experiment",
        response_model=ExperimentCreateResponse,
        dependencies=[Depends(require_token)],
    )
    def create_experiment(
        request: ExperimentCreate, conn: sqlite3.Connection = Depends(get_conn)
    ):
        """Create a new experiment plan."""
        try:
            handle = create_plan(
                conn, request.models, request.profiles, request.runs, config
            )
        except ExperimentConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except CorruptRecordError:
            raise
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))

        return ExperimentCreateResponse(
            experiment_id=handle.experiment_id,
            total_tasks=handle.total_tasks,
            message=f"Experiment created with {handle.total_tasks} tasks",
        )

    @app.post(
        "/api/v1/experiment/advance",
        response_model=AdvanceResponse,
        dependencies=[Depends(require_token)],
    )
    def advance(conn: sqlite3.Connection = Depends(get_conn)):
        """Run the next task of the current experiment."""
        if task_runner is None:
            raise HTTPException(status_code=501, detail="No task runner configured")
        return advance_one(conn, task_runner, config).to_response()

    @app.get(
        "/api/v1/experiment/status",
        response_model=dict[str, JSONValue],
        dependencies=[Depends(require_token)],
    )
    def get_status(conn: sqlite3.Connection = Depends(get_conn)):
        """Get the current progress record."""
        progress = read_progress(conn)
        if progress is None:
            return {"status": "no_experiment"}
        return progress.model_dump(mode="json")

    @app.get(
        "/api/v1/experiment/results",
        response_model=ResultsResponse,
        dependencies=[Depends(require_token)],
    )
    def get_experiment_results(conn: sqlite3.Connection = Depends(get_conn)):
        """Get the leaderboard and, once finished, the summary."""
        return get_results(conn, config)

    @app.delete(
        "/api/v1/experiment",
        response_model=ResetResponse,
        dependencies=[Depends(require_token)],
    )
    def abort(conn: sqlite3.Connection = Depends(get_conn)):
        """Clear all experiment state unconditionally."""
        abort_experiment(conn)
        return ResetResponse()

    @app.get("/health", response_model=HealthResponse)
    def health_check():
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    return app
