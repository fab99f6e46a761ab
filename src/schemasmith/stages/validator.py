# Copyright (c) Syntropy Systems
"""Validation of a schema against production output datasets."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from schemasmith.errors import ConfigurationError, NoDataFound, PlatformError, ValidationFailed
from schemasmith.models import DatasetFailure, ValidationOutcome
from schemasmith.schema_document import normalize_schema

if TYPE_CHECKING:
    from collections.abc import Sequence

    from schemasmith.clients.protocols import WorkloadPlatform
    from schemasmith.models import JSONObject, JSONValue, QueryWindow
    from schemasmith.stages.discovery import DatasetDiscovery

logger = logging.getLogger(__name__)

DEFAULT_VALIDATOR_ID = "jaroslavhejlek/validate-dataset-with-json-schema"
NOT_FOUND_MARKER = "Dataset was not found"


class _DatasetReport:
    """Errors and item count gathered for one dataset."""

    def __init__(self) -> None:
        self.valid = True
        self.errors: list[str] = []
        self.item_count = 0

    def add(self, item: dict[str, JSONValue]) -> None:
        if item.get("isValid") is not True:
            self.valid = False
        errors = item.get("errors")
        if isinstance(errors, list):
            self.errors.extend(str(error) for error in errors)
        count = item.get("itemCount")
        if isinstance(count, int) and not isinstance(count, bool):
            self.item_count += count

    @property
    def not_found(self) -> bool:
        return any(NOT_FOUND_MARKER in error for error in self.errors)


class SchemaValidator:
    """Runs the validator workload over production datasets."""

    def __init__(
        self,
        platform: WorkloadPlatform,
        discovery: DatasetDiscovery | None = None,
        validator_id: str = DEFAULT_VALIDATOR_ID,
        timeout: int = 300,
        memory: int = 2048,
    ) -> None:
        self.platform = platform
        self.discovery = discovery
        self.validator_id = validator_id
        self.timeout = timeout
        self.memory = memory

    def validate(
        self,
        target: str,
        schema: JSONObject,
        window: QueryWindow,
        handles: Sequence[str] | None = None,
    ) -> ValidationOutcome:
        """Validate ``schema`` against datasets of ``target``.

        Args:
            target: Technical name of the workload
            schema: Schema document in any accepted shape
            window: Discovery window, used when ``handles`` is None
            handles: Datasets to validate against instead of discovering them

        Returns:
            Counts and diagnostics; ``total_datasets`` is 0 when there was
            nothing to validate against.

        """
        if handles is None:
            if self.discovery is None:
                msg = "Discovering production datasets needs a metrics backend"
                raise ConfigurationError(msg)
            handles = self.discovery.discover(target, window)
        unique = list(dict.fromkeys(handles))

        if not unique:
            logger.info("No datasets to validate %s against", target)
            return ValidationOutcome(target=target, total_datasets=0)

        document = normalize_schema(schema)
        logger.info("Validating schema against %d datasets", len(unique))
        run = self.platform.run_workload(
            self.validator_id,
            {"datasetIds": unique, "schema": document.fields},
            timeout=self.timeout,
            memory=self.memory,
        )
        if run.output_handle is None:
            msg = f"Validator run {run.run_id} ({run.status}) returned no dataset"
            raise PlatformError(msg)

        items = self.platform.list_dataset_items(run.output_handle)
        outcome = summarize(target, unique, items)
        logger.info(
            "Validation: %d valid, %d invalid, %d not found",
            outcome.valid_datasets,
            outcome.invalid_datasets,
            len(outcome.not_found),
        )
        return outcome


def summarize(target: str, handles: Sequence[str], items: Sequence[JSONValue]) -> ValidationOutcome:
    """Fold validator output items into a ValidationOutcome.

    The validator reports only datasets with problems; an empty result
    means every dataset passed.
    """
    reports: dict[str, _DatasetReport] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        handle = item.get("datasetId")
        key = handle if isinstance(handle, str) else "unknown"
        reports.setdefault(key, _DatasetReport()).add(item)

    not_found = [handle for handle, report in reports.items() if report.not_found]
    failures = [
        DatasetFailure(
            handle=handle,
            errors=report.errors or ["Unknown validation error"],
            item_count=report.item_count,
        )
        for handle, report in reports.items()
        if not report.valid and not report.not_found
    ]
    total = len(handles)
    return ValidationOutcome(
        target=target,
        total_datasets=total,
        valid_datasets=max(0, total - len(failures) - len(not_found)),
        invalid_datasets=len(failures),
        not_found=not_found,
        failures=failures,
        total_items=sum(report.item_count for report in reports.values()),
    )


def require_success(outcome: ValidationOutcome) -> ValidationOutcome:
    """Return ``outcome`` if every examined dataset validated.

    Raises:
        NoDataFound: If no dataset was examined.
        ValidationFailed: If the success rate is below 1.0.

    """
    if outcome.total_datasets == 0:
        msg = "No datasets found for validation; validation cannot be skipped"
        raise NoDataFound(msg)
    if not outcome.succeeded:
        failed = outcome.total_datasets - outcome.valid_datasets
        msg = (
            f"{failed} out of {outcome.total_datasets} datasets failed validation. "
            f"Success rate: {outcome.success_rate * 100:.1f}%"
        )
        raise ValidationFailed(msg)
    return outcome
