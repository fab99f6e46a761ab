# Copyright (c) Syntropy Systems
"""Metrics/query backend client (Redash)."""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from pydantic import Field

from schemasmith.clients.base import ServiceClient
from schemasmith.errors import MetricsError, PollTimeoutError
from schemasmith.models.base import ApiModel, JSONValue

if TYPE_CHECKING:
    import httpx

    from schemasmith.models import QueryWindow

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://charts.apify.com/api"
DEFAULT_QUERY_ID = 2039

JOB_SUCCESS = 3
JOB_FAILURE = 4

# Row keys that may carry the output dataset id, in priority order
HANDLE_KEYS = ("default_dataset_id", "dataset_id", "id")


class _ResultData(ApiModel):
    rows: list[dict[str, JSONValue]] = Field(default_factory=list)


class _QueryResult(ApiModel):
    data: _ResultData


class _Job(ApiModel):
    id: str | int | None = None
    status: int | None = None
    error: str | None = None
    query_result_id: int | None = None


class _QueryResponse(ApiModel):
    query_result: _QueryResult | None = None
    job: _Job | None = None


def row_handle(row: dict[str, JSONValue]) -> str | None:
    """Output dataset id of one query row, if present."""
    for key in HANDLE_KEYS:
        value = row.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _query_parameters(workload_id: str, window: QueryWindow) -> dict[str, str]:
    return {
        "actor_id": workload_id,
        "days_back": str(window.days_back),
        "maximum_results": str(window.maximum_results),
        "minimum_results": str(window.minimum_results),
        "runs_per_user": str(window.runs_per_user),
        "limit": str(window.limit),
    }


class MetricsClient(ServiceClient):
    """Runs the recent-datasets query and returns its rows.

    Cached results are used when the backend has them. Otherwise the query
    is executed and its job polled at a fixed interval for a fixed number of
    attempts.
    """

    error_class = MetricsError
    service_name = "Metrics"

    def __init__(  # noqa: PLR0913
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        query_id: int = DEFAULT_QUERY_ID,
        poll_interval: float = 10.0,
        poll_attempts: int = 30,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Backend API key
            base_url: API base URL
            query_id: Id of the recent-datasets query
            poll_interval: Seconds between job status checks
            poll_attempts: Maximum number of job status checks
            timeout: Request timeout in seconds
            transport: Optional httpx transport
            sleep: Sleep function, replaceable in tests

        """
        super().__init__(
            base_url,
            headers={"Authorization": f"Key {api_key}"},
            timeout=timeout,
            transport=transport,
        )
        self.query_id = query_id
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self._sleep = sleep

    def execute(self, workload_id: str, window: QueryWindow) -> list[dict[str, JSONValue]]:
        """Run the query for ``workload_id`` and return its rows.

        Raises:
            MetricsError: If the backend fails or reports a failed job.
            PollTimeoutError: If the job does not finish within the poll budget.

        """
        parameters = _query_parameters(workload_id, window)

        try:
            cached = self._request(
                "GET",
                f"/queries/{self.query_id}/results.json",
                params=parameters,
                response_model=_QueryResponse,
            )
        except MetricsError as e:
            logger.debug("No cached results for query %s: %s", self.query_id, e)
            cached = None
        if cached is not None and cached.query_result is not None:
            logger.info("Using cached results of query %s", self.query_id)
            return cached.query_result.data.rows

        response = self._request(
            "POST",
            f"/queries/{self.query_id}/results",
            json={"parameters": parameters, "max_age": 0},
            response_model=_QueryResponse,
        )
        if response.query_result is not None:
            return response.query_result.data.rows
        if response.job is None or response.job.id is None:
            msg = "Query execution returned neither results nor a job"
            raise MetricsError(msg)

        result_id = self._wait_for_job(str(response.job.id))
        results = self._request(
            "GET",
            f"/query_results/{result_id}.json",
            response_model=_QueryResponse,
        )
        if results.query_result is None:
            msg = f"Query result {result_id} has no data"
            raise MetricsError(msg)
        return results.query_result.data.rows

    def _wait_for_job(self, job_id: str) -> int:
        """Poll a query job and return its result id."""
        for attempt in range(1, self.poll_attempts + 1):
            self._sleep(self.poll_interval)
            try:
                response = self._request("GET", f"/jobs/{job_id}", response_model=_QueryResponse)
            except MetricsError as e:
                logger.warning("Job %s status check failed (attempt %d): %s", job_id, attempt, e)
                continue
            job = response.job
            status = job.status if job else None
            logger.debug("Job %s status %s (attempt %d/%d)", job_id, status, attempt, self.poll_attempts)
            if job is None:
                continue
            if job.status == JOB_FAILURE:
                msg = f"Query job {job_id} failed: {job.error or 'unknown error'}"
                raise MetricsError(msg)
            if job.status == JOB_SUCCESS:
                if job.query_result_id is None:
                    msg = f"Query job {job_id} finished without a result id"
                    raise MetricsError(msg)
                return job.query_result_id
        msg = f"Query job {job_id} did not finish after {self.poll_attempts} attempts"
        raise PollTimeoutError(msg)
