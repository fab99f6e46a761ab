# Copyright (c) Syntropy Systems
"""Pydantic models for pipeline requests, progress and reports."""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from .base import JSONObject, SchemaSmithModel
from .inputs import InputValidationResult, TestInputSet
from .publish import PublishResult
from .runs import DatasetSample, VariantRunResult
from .validation import ValidationOutcome


class Stage(str, Enum):
    """Pipeline stages, in execution order."""

    INPUT_GENERATION = "input_generation"
    SCHEMA_GENERATION = "schema_generation"
    SCHEMA_ENHANCEMENT = "schema_enhancement"
    SCHEMA_VALIDATION = "schema_validation"
    PR_CREATION = "pr_creation"


STAGE_ORDER: tuple[Stage, ...] = tuple(Stage)


class StageStatus(str, Enum):
    """Terminal status of a stage within one run."""

    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"


class SchemaSource(str, Enum):
    """Where the draft schema is inferred from."""

    TEST_RUNS = "test_runs"
    PRODUCTION_SAMPLE = "production_sample"


class StageToggles(SchemaSmithModel):
    """Per-stage enable flags."""

    generate_inputs: bool = True
    generate_schema: bool = True
    enhance_schema: bool = True
    validate_schema: bool = True
    create_pr: bool = True

    def enabled(self, stage: Stage) -> bool:
        """Return whether ``stage`` should run."""
        return {
            Stage.INPUT_GENERATION: self.generate_inputs,
            Stage.SCHEMA_GENERATION: self.generate_schema,
            Stage.SCHEMA_ENHANCEMENT: self.enhance_schema,
            Stage.SCHEMA_VALIDATION: self.validate_schema,
            Stage.PR_CREATION: self.create_pr,
        }[stage]


class QueryWindow(SchemaSmithModel):
    """Lookback window and result bounds for production dataset discovery."""

    days_back: int = Field(default=5, ge=1)
    maximum_results: int = Field(default=10, ge=1)
    minimum_results: int = Field(default=1, ge=0)
    runs_per_user: int = Field(default=1, ge=1)
    limit: int = Field(default=1000, ge=1)


class PipelineRequest(SchemaSmithModel):
    """Caller-supplied configuration for one pipeline run."""

    target: str = Field(min_length=1)
    stages: StageToggles = Field(default_factory=StageToggles)
    schema_source: SchemaSource = SchemaSource.TEST_RUNS
    want_views: bool = False
    window: QueryWindow = Field(default_factory=QueryWindow)
    repository_url: str | None = None

    # Substitutes for the outputs of disabled stages
    test_inputs: TestInputSet | None = None
    draft_schema: JSONObject | None = None
    refined_schema: JSONObject | None = None


class PipelineProgress(SchemaSmithModel):
    """Status of every stage.

    Updated only through :meth:`advance`, which returns a new value and
    refuses to move a stage out of a terminal status.
    """

    input_generation: StageStatus = StageStatus.SKIPPED
    schema_generation: StageStatus = StageStatus.SKIPPED
    schema_enhancement: StageStatus = StageStatus.SKIPPED
    schema_validation: StageStatus = StageStatus.SKIPPED
    pr_creation: StageStatus = StageStatus.SKIPPED

    def status_of(self, stage: Stage) -> StageStatus:
        """Return the status recorded for ``stage``."""
        return StageStatus(getattr(self, stage.value))

    def advance(self, stage: Stage, status: StageStatus) -> PipelineProgress:
        """Return a copy with ``stage`` moved to ``status``."""
        current = self.status_of(stage)
        if current is not StageStatus.SKIPPED and current is not status:
            msg = f"Stage {stage.value} is already {current.value}"
            raise ValueError(msg)
        return self.model_copy(update={stage.value: status})

    def as_dict(self) -> dict[str, str]:
        """Return ``{stage: status}`` with plain string values."""
        return {stage.value: self.status_of(stage).value for stage in STAGE_ORDER}


class PipelineArtifacts(SchemaSmithModel):
    """Everything the stages produced during one run."""

    test_inputs: TestInputSet | None = None
    input_validation: InputValidationResult | None = None
    input_attempts: int = 0
    run_results: list[VariantRunResult] = Field(default_factory=list)
    output_handles: list[str] = Field(default_factory=list)
    datasets_used: list[DatasetSample] = Field(default_factory=list)
    reserved_for_validation: list[str] | None = None
    draft_schema: JSONObject | None = None
    refined_schema: JSONObject | None = None
    validation: ValidationOutcome | None = None
    publish: PublishResult | None = None


class PipelineReport(SchemaSmithModel):
    """Final report returned to the caller."""

    success: bool
    target: str
    progress: PipelineProgress
    artifacts: PipelineArtifacts
    publish_url: str | None = None
    failed_stage: Stage | None = None
    error: str | None = None
    error_kind: str | None = None
