# Copyright (c) Syntropy Systems
"""Pydantic models for workload runs and sampled datasets."""

from __future__ import annotations

from pydantic import Field

from .base import JSONValue, SchemaSmithModel

TERMINAL_RUN_STATUSES = frozenset({"SUCCEEDED", "FAILED", "TIMED-OUT", "ABORTED"})


class WorkloadRun(SchemaSmithModel):
    """A run record as reported by the workload platform."""

    run_id: str
    status: str
    output_handle: str | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the run finished successfully."""
        return self.status == "SUCCEEDED"

    @property
    def finished(self) -> bool:
        """Whether the run reached a terminal status."""
        return self.status in TERMINAL_RUN_STATUSES


class VariantRunResult(SchemaSmithModel):
    """Result of running the target workload with one input variant.

    A failed result may still carry an output handle: workloads can fail
    after emitting partial output.
    """

    variant: str
    success: bool
    output_handle: str | None = None
    run_id: str | None = None
    error: str | None = None


class RunReconciliation(SchemaSmithModel):
    """Summary of a set of variant runs."""

    total_runs: int
    successful_runs: int
    overall_success: bool
    summary: str


class DatasetSample(SchemaSmithModel):
    """Items sampled from one production dataset."""

    handle: str
    item_count: int
    items: list[JSONValue] = Field(default_factory=list)
