# Copyright (c) Syntropy Systems
"""Draft schema inference from workload output datasets."""
from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING, cast

from schemasmith.errors import SchemaSynthesisError, ServiceClientError
from schemasmith.models import DatasetSample, SynthesisResult
from schemasmith.schema_document import is_schema_shaped

if TYPE_CHECKING:
    from collections.abc import Sequence

    from schemasmith.clients.protocols import WorkloadPlatform
    from schemasmith.models import JSONObject, JSONValue, QueryWindow
    from schemasmith.stages.discovery import DatasetDiscovery

logger = logging.getLogger(__name__)

DEFAULT_GENERATOR_ID = "kMFja3BjKqZiO7pGc"
SAMPLE_FRACTION = 0.5
SAMPLE_CAP = 1000


def split_for_validation(
    handles: Sequence[str],
    rng: random.Random | None = None,
) -> tuple[list[str], list[str]]:
    """Randomly split handles into a generation half and a validation half.

    Duplicates are dropped first, so the halves are disjoint. The generation
    half gets ``floor(n / 2)`` handles and the validation half the rest.
    """
    unique = list(dict.fromkeys(handles))
    (rng or random.Random()).shuffle(unique)
    middle = len(unique) // 2
    return unique[:middle], unique[middle:]


def sample_size(item_count: int, fraction: float = SAMPLE_FRACTION, cap: int = SAMPLE_CAP) -> int:
    """Number of items to sample from a dataset of ``item_count`` items."""
    return max(0, min(int(item_count * fraction), cap))


class SchemaSynthesizer:
    """Infers a draft schema by running the schema-generator workload."""

    def __init__(  # noqa: PLR0913
        self,
        platform: WorkloadPlatform,
        generator_id: str = DEFAULT_GENERATOR_ID,
        discovery: DatasetDiscovery | None = None,
        sample_fraction: float = SAMPLE_FRACTION,
        sample_cap: int = SAMPLE_CAP,
        rng: random.Random | None = None,
        timeout: int = 300,
        memory: int = 2048,
    ) -> None:
        """Initialize the synthesizer.

        Args:
            platform: Workload platform that runs the generator
            generator_id: Id of the schema-generator workload
            discovery: Production dataset discovery, needed for sampling
            sample_fraction: Share of each dataset's items to sample
            sample_cap: Upper bound on sampled items per dataset
            rng: Random source for the generation/validation split
            timeout: Generator run timeout in seconds
            memory: Generator run memory in megabytes

        """
        self.platform = platform
        self.generator_id = generator_id
        self.discovery = discovery
        self.sample_fraction = sample_fraction
        self.sample_cap = sample_cap
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.memory = memory

    def _infer(self, handles: Sequence[str], generator_id: str) -> tuple[str, list[JSONValue]]:
        """Run the generator over ``handles`` and read back its output items."""
        run = self.platform.run_workload(
            generator_id,
            {"datasetIds": list(handles)},
            timeout=self.timeout,
            memory=self.memory,
        )
        if run.output_handle is None:
            msg = f"Schema generation run {run.run_id} ({run.status}) returned no dataset"
            raise SchemaSynthesisError(msg)
        return run.output_handle, self.platform.list_dataset_items(run.output_handle)

    def synthesize(
        self,
        handles: Sequence[str],
        generator_id: str | None = None,
    ) -> SynthesisResult:
        """Infer a schema from the given output datasets.

        Returns:
            The first schema-shaped item the generator produced, or an error.

        """
        if not handles:
            return SynthesisResult(error="No output datasets to infer a schema from", no_data=True)

        generator = generator_id or self.generator_id
        logger.info("Inferring schema from %d datasets with %s", len(handles), generator)
        try:
            output_handle, items = self._infer(handles, generator)
        except (ServiceClientError, SchemaSynthesisError) as e:
            return SynthesisResult(error=str(e))

        if not items:
            return SynthesisResult(
                error="No schema found in generated dataset",
                inference_handle=output_handle,
            )
        for item in items:
            if is_schema_shaped(item):
                return SynthesisResult(
                    schema=cast("JSONObject", item),
                    inference_handle=output_handle,
                )
        return SynthesisResult(
            error="No valid schema found in dataset items",
            inference_handle=output_handle,
        )

    def sample_dataset(self, handle: str) -> DatasetSample | None:
        """Sample items from one dataset; None when there is nothing to sample."""
        count = self.platform.get_dataset_item_count(handle)
        size = sample_size(count, self.sample_fraction, self.sample_cap)
        if size == 0:
            logger.info("Skipping dataset %s: %d items", handle, count)
            return None
        items = self.platform.list_dataset_items(handle, limit=size, offset=0)
        logger.info("Sampled %d of %d items from dataset %s", len(items), count, handle)
        return DatasetSample(handle=handle, item_count=count, items=items)

    def synthesize_from_sample(self, target: str, window: QueryWindow) -> SynthesisResult:
        """Infer a schema from recent production datasets of ``target``.

        Half of the discovered datasets are reserved for validation and never
        used here. The reserved handles are returned with the result.
        """
        if self.discovery is None:
            msg = "Sampling production data needs a metrics backend"
            raise SchemaSynthesisError(msg)

        try:
            handles = self.discovery.discover(target, window)
        except ServiceClientError as e:
            return SynthesisResult(error=f"Dataset discovery failed: {e}")
        if not handles:
            return SynthesisResult(
                error=f"No datasets found for {target} in the last {window.days_back} days",
                no_data=True,
            )

        generation, reserved = split_for_validation(handles, self.rng)
        logger.info(
            "Using %d datasets for generation, %d reserved for validation",
            len(generation),
            len(reserved),
        )

        samples: list[DatasetSample] = []
        for handle in generation:
            try:
                sample = self.sample_dataset(handle)
            except ServiceClientError as e:
                logger.warning("Failed to sample dataset %s: %s", handle, e)
                continue
            if sample is not None:
                samples.append(sample)

        if not samples:
            return SynthesisResult(
                error="Failed to sample data from any dataset",
                reserved_for_validation=reserved,
            )

        result = self.synthesize([sample.handle for sample in samples])
        return result.model_copy(
            update={"datasets_used": samples, "reserved_for_validation": reserved}
        )
