# Copyright (c) Syntropy Systems
"""Pydantic models shared across schemasmith."""

from .base import JSONObject, JSONValue
from .inputs import (
    VARIANT_NAMES,
    AcceptedInputs,
    InputValidationResult,
    TestInputSet,
    VariantCheck,
)
from .pipeline import (
    STAGE_ORDER,
    PipelineArtifacts,
    PipelineProgress,
    PipelineReport,
    PipelineRequest,
    QueryWindow,
    SchemaSource,
    Stage,
    StageStatus,
    StageToggles,
)
from .publish import (
    FileChange,
    PublishResult,
    PullRequestInfo,
    RepoEntry,
    RepoFile,
    RepositoryRef,
)
from .runs import DatasetSample, RunReconciliation, VariantRunResult, WorkloadRun
from .synthesis import SynthesisResult
from .validation import DatasetFailure, ValidationOutcome

__all__ = [
    "STAGE_ORDER",
    "VARIANT_NAMES",
    "AcceptedInputs",
    "DatasetFailure",
    "DatasetSample",
    "FileChange",
    "InputValidationResult",
    "JSONObject",
    "JSONValue",
    "PipelineArtifacts",
    "PipelineProgress",
    "PipelineReport",
    "PipelineRequest",
    "PublishResult",
    "PullRequestInfo",
    "QueryWindow",
    "RepoEntry",
    "RepoFile",
    "RepositoryRef",
    "RunReconciliation",
    "SchemaSource",
    "Stage",
    "StageStatus",
    "StageToggles",
    "SynthesisResult",
    "TestInputSet",
    "ValidationOutcome",
    "VariantCheck",
    "VariantRunResult",
    "WorkloadRun",
]
