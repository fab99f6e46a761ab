# Copyright (c) Syntropy Systems
"""Workload platform client (Apify API v2)."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, cast

from pydantic import Field

from schemasmith.clients.base import ServiceClient
from schemasmith.errors import PlatformError, PollTimeoutError
from schemasmith.models.base import ApiModel
from schemasmith.models.runs import WorkloadRun

if TYPE_CHECKING:
    import httpx

    from schemasmith.models.base import JSONValue

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.apify.com/v2"

# Longest server-side wait the API honors for one request
MAX_WAIT_SECONDS = 60


class _RunData(ApiModel):
    id: str
    status: str
    default_dataset_id: str | None = Field(default=None, alias="defaultDatasetId")


class _RunEnvelope(ApiModel):
    data: _RunData


class _ActorData(ApiModel):
    id: str
    name: str | None = None


class _ActorEnvelope(ApiModel):
    data: _ActorData


class _DatasetData(ApiModel):
    id: str
    item_count: int = Field(default=0, alias="itemCount")


class _DatasetEnvelope(ApiModel):
    data: _DatasetData


def _path_id(workload_id: str) -> str:
    """Technical names use ``~`` instead of ``/`` in URL paths."""
    return workload_id.replace("/", "~")


def _to_run(data: _RunData) -> WorkloadRun:
    return WorkloadRun(
        run_id=data.id,
        status=data.status,
        output_handle=data.default_dataset_id,
    )


class PlatformClient(ServiceClient):
    """Blocking client for starting workloads and reading their datasets."""

    error_class = PlatformError
    service_name = "Platform"

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        wait_seconds: int = MAX_WAIT_SECONDS,
    ) -> None:
        """Initialize the client.

        Args:
            token: Platform API token
            base_url: API base URL
            timeout: Request timeout in seconds; must exceed ``wait_seconds``
            transport: Optional httpx transport
            wait_seconds: Server-side wait per status request

        """
        super().__init__(
            base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=max(timeout, wait_seconds + 10),
            transport=transport,
        )
        self.wait_seconds = min(wait_seconds, MAX_WAIT_SECONDS)

    # --- Runs ---

    def start_run(
        self,
        workload_id: str,
        run_input: JSONValue,
        *,
        timeout: int | None = None,
        memory: int | None = None,
    ) -> WorkloadRun:
        """Start a run without waiting for it.

        Args:
            workload_id: Platform id or ``owner/name`` technical name
            run_input: Input document passed to the workload
            timeout: Run timeout in seconds
            memory: Run memory in megabytes

        Returns:
            The run record as first reported

        Raises:
            PlatformError: If ``run_input`` is not a JSON object.

        """
        if not isinstance(run_input, dict):
            msg = f"Run input for {workload_id} must be a JSON object, got {type(run_input).__name__}"
            raise PlatformError(msg)
        params: dict[str, int] = {}
        if timeout is not None:
            params["timeout"] = timeout
        if memory is not None:
            params["memory"] = memory
        result = self._request(
            "POST",
            f"/acts/{_path_id(workload_id)}/runs",
            json=cast("dict[str, object]", run_input),
            params=params,
            response_model=_RunEnvelope,
        )
        return _to_run(result.data)

    def get_run(self, run_id: str, wait: int = 0) -> WorkloadRun:
        """Fetch a run record.

        Args:
            run_id: Run identifier
            wait: Seconds the server may hold the request waiting for a
                terminal status

        Returns:
            The run record

        """
        params = {"waitForFinish": wait} if wait else None
        result = self._request(
            "GET",
            f"/actor-runs/{run_id}",
            params=params,
            response_model=_RunEnvelope,
        )
        return _to_run(result.data)

    def wait_for_run(self, run_id: str, max_polls: int) -> WorkloadRun:
        """Poll a run until it reaches a terminal status.

        Raises:
            PollTimeoutError: If the run is still active after ``max_polls``
                status requests.

        """
        for attempt in range(1, max_polls + 1):
            run = self.get_run(run_id, wait=self.wait_seconds)
            if run.finished:
                return run
            logger.debug("Run %s still %s (poll %d/%d)", run_id, run.status, attempt, max_polls)
        msg = f"Run {run_id} did not finish after {max_polls} status polls"
        raise PollTimeoutError(msg)

    def run_workload(
        self,
        workload_id: str,
        run_input: JSONValue,
        *,
        timeout: int | None = None,
        memory: int | None = None,
        on_start: Callable[[WorkloadRun], None] | None = None,
    ) -> WorkloadRun:
        """Start a run and block until it finishes.

        The poll budget covers the run timeout plus one extra wait period,
        so a platform-side timeout surfaces as a ``TIMED-OUT`` status.
        """
        run = self.start_run(workload_id, run_input, timeout=timeout, memory=memory)
        logger.info("Started run %s of %s", run.run_id, workload_id)
        if on_start is not None:
            on_start(run)
        if run.finished:
            return run
        budget = timeout if timeout is not None else 3600
        max_polls = budget // self.wait_seconds + 2
        return self.wait_for_run(run.run_id, max_polls)

    # --- Workloads ---

    def resolve_workload_id(self, name: str) -> str:
        """Resolve ``owner/name`` to the platform's workload id."""
        result = self._request(
            "GET",
            f"/acts/{_path_id(name)}",
            response_model=_ActorEnvelope,
        )
        logger.info("Resolved %s to workload id %s", name, result.data.id)
        return result.data.id

    # --- Datasets ---

    def get_dataset_item_count(self, handle: str) -> int:
        """Number of items stored in a dataset."""
        result = self._request(
            "GET",
            f"/datasets/{handle}",
            response_model=_DatasetEnvelope,
        )
        return result.data.item_count

    def list_dataset_items(
        self,
        handle: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[JSONValue]:
        """Read items from a dataset.

        Args:
            handle: Dataset identifier
            limit: Maximum number of items; None reads everything
            offset: Number of items to skip

        Returns:
            Items in storage order

        """
        params: dict[str, object] = {"clean": "true", "offset": offset}
        if limit is not None:
            params["limit"] = limit
        data = self._request("GET", f"/datasets/{handle}/items", params=params)
        if not isinstance(data, list):
            msg = f"Dataset {handle} items response is not a list"
            raise PlatformError(msg)
        return data
