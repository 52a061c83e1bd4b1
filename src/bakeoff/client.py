# Copyright (c) Syntropy Systems
"""HTTP client for drivers to communicate with the bakeoff server."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, TypeVar, cast, overload

import httpx
from pydantic import BaseModel, ValidationError
from typing_extensions import Self

from bakeoff.models.api import (
    AdvanceResponse,
    ErrorResponse,
    ExperimentCreateResponse,
    HealthResponse,
    ResetResponse,
)
from bakeoff.models.experiment import ProgressRecord
from bakeoff.models.leaderboard import ResultsResponse

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from bakeoff.models.base import JSONValue

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


class BakeoffClientError(Exception):
    """Error from bakeoff server communication."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BakeoffClient:
    """HTTP client for creating, advancing and inspecting an experiment."""

    server_url: str
    timeout: float
    _client: httpx.Client

    def __init__(
        self,
        server_url: str,
        timeout: float = 120.0,
        token: Optional[str] = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Base URL of the bakeoff server (e.g., "http://localhost:8080")
            timeout: Request timeout in seconds; advance calls block for a
                whole task, so keep this above the task timeout
            token: Bearer token when the server requires one

        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        headers = {"Authorization": f"Bearer {token}"} if token else None
        self._client = httpx.Client(timeout=timeout, headers=headers)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> Self:
        """Enter the client context and return self."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the client context and close the HTTP client."""
        self.close()

    @overload
    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        *,
        response_model: type[ResponseModel],
    ) -> ResponseModel:
        ...

    @overload
    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        *,
        response_model: None = None,
    ) -> dict[str, JSONValue]:
        ...

    def _request(
        self,
        method: str,
        path: str,
        json: Mapping[str, object] | None = None,
        *,
        response_model: type[ResponseModel] | None = None,
    ) -> ResponseModel | dict[str, JSONValue]:
        """Make an HTTP request to the server."""
        url = f"{self.server_url}{path}"
        try:
            response = self._client.request(method=method, url=url, json=json)
            _ = response.raise_for_status()
            data = response.json()
            if response_model is None:
                return cast("dict[str, JSONValue]", data)
            return response_model.model_validate(data)
        except httpx.HTTPStatusError as e:
            try:
                detail = ErrorResponse.model_validate(e.response.json()).detail
            except (ValidationError, ValueError):
                detail = str(e)
            msg = f"Server error: {detail}"
            raise BakeoffClientError(msg, status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            msg = f"Connection error: {e}"
            raise BakeoffClientError(msg) from e

    # --- Experiment Operations ---

    def create_experiment(
        self,
        models: list[str],
        profiles: list[str],
        runs: int = 3,
    ) -> ExperimentCreateResponse:
        """Create a new experiment plan.

        Raises:
            BakeoffClientError: with status_code 409 if one is already running

        """
        return self._request(
            "POST",
            "/api/v1/experiment",
            json={"models": models, "profiles": profiles, "runs": runs},
            response_model=ExperimentCreateResponse,
        )

    def advance(self) -> AdvanceResponse:
        """Run the next task on the server (blocks while it runs)."""
        return self._request(
            "POST",
            "/api/v1/experiment/advance",
            response_model=AdvanceResponse,
        )

    def status(self) -> ProgressRecord | None:
        """Get the progress record, or None when no experiment exists."""
        data = self._request("GET", "/api/v1/experiment/status")
        if data.get("status") == "no_experiment":
            return None
        return ProgressRecord.model_validate(data)

    def results(self) -> ResultsResponse:
        """Get the current leaderboard and summary."""
        return self._request(
            "GET",
            "/api/v1/experiment/results",
            response_model=ResultsResponse,
        )

    def abort(self) -> ResetResponse:
        """Clear all experiment state."""
        return self._request(
            "DELETE",
            "/api/v1/experiment",
            response_model=ResetResponse,
        )

    def health(self) -> HealthResponse:
        return self._request("GET", "/health", response_model=HealthResponse)
