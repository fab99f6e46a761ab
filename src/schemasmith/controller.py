# Copyright (c) Syntropy Systems
"""The pipeline controller.

Runs the five stages in order. Every stage either completes or fails; the
first failure stops the run and leaves later stages skipped. A disabled
stage's output comes from the caller's substitute, and a downstream stage
that needs a missing substitute fails with a ConfigurationError.

The controller does no I/O of its own; all of it goes through the injected
components.
"""
from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from typing import TYPE_CHECKING, Any, Callable

from schemasmith.clients.github import GitHubClient
from schemasmith.clients.llm import ChatClient
from schemasmith.clients.metrics import MetricsClient
from schemasmith.clients.platform import PlatformClient
from schemasmith.errors import (
    ConfigurationError,
    NoDataFound,
    PartialRunFailure,
    SchemaShapeError,
    SchemaSmithError,
    SchemaSynthesisError,
    StageError,
)
from schemasmith.models import (
    STAGE_ORDER,
    PipelineArtifacts,
    PipelineProgress,
    PipelineReport,
    SchemaSource,
    Stage,
    StageStatus,
)
from schemasmith.publish.publisher import Publisher
from schemasmith.schema_document import normalize_schema
from schemasmith.stages.discovery import DatasetDiscovery
from schemasmith.stages.input_generation import InputGenerationLoop, InputGenerator
from schemasmith.stages.refiner import SchemaRefiner
from schemasmith.stages.synthesizer import SchemaSynthesizer
from schemasmith.stages.validator import SchemaValidator, require_success
from schemasmith.stages.variant_runner import VariantRunner

if TYPE_CHECKING:
    import random

    from schemasmith.clients.protocols import ChatModel, MetricsBackend, SourceControl, WorkloadPlatform
    from schemasmith.config import Credentials, PipelineConfig
    from schemasmith.models import JSONObject, PipelineRequest

logger = logging.getLogger(__name__)

Produced = dict[str, Any]
StageHandler = Callable[["PipelineRequest", PipelineArtifacts, Produced], None]


def substitute_for(stage: Stage, request: PipelineRequest) -> Produced:
    """Artifacts a disabled stage contributes, taken from the request."""
    if stage is Stage.INPUT_GENERATION and request.test_inputs is not None:
        return {"test_inputs": request.test_inputs}
    if stage is Stage.SCHEMA_GENERATION and request.draft_schema is not None:
        return {"draft_schema": request.draft_schema}
    if stage is Stage.SCHEMA_ENHANCEMENT and request.refined_schema is not None:
        return {"refined_schema": request.refined_schema}
    return {}


def check_field_set(draft: JSONObject, refined: JSONObject) -> None:
    """Raise SchemaShapeError if refinement changed the set of top-level fields."""
    before = normalize_schema(draft).field_names
    after = normalize_schema(refined).field_names
    if before == after:
        return
    added = sorted(after - before)
    removed = sorted(before - after)
    msg = f"Refined schema changed the field set (added: {added}, removed: {removed})"
    raise SchemaShapeError(msg)


class PipelineController:
    """Drives one pipeline run over injected components.

    Components may be None; a stage whose component is missing fails with a
    ConfigurationError when it is enabled.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        input_loop: InputGenerationLoop | None = None,
        runner: VariantRunner | None = None,
        synthesizer: SchemaSynthesizer | None = None,
        refiner: SchemaRefiner | None = None,
        validator: SchemaValidator | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self.input_loop = input_loop
        self.runner = runner
        self.synthesizer = synthesizer
        self.refiner = refiner
        self.validator = validator
        self.publisher = publisher
        self._handlers: dict[Stage, StageHandler] = {
            Stage.INPUT_GENERATION: self._generate_inputs,
            Stage.SCHEMA_GENERATION: self._generate_schema,
            Stage.SCHEMA_ENHANCEMENT: self._enhance_schema,
            Stage.SCHEMA_VALIDATION: self._validate_schema,
            Stage.PR_CREATION: self._create_pull_request,
        }

    def run(self, request: PipelineRequest) -> PipelineReport:
        """Run the pipeline for ``request`` and report the outcome.

        Stage failures are reported, not raised.
        """
        progress = PipelineProgress()
        artifacts = PipelineArtifacts()
        logger.info("Starting pipeline for %s", request.target)

        for stage in STAGE_ORDER:
            if not request.stages.enabled(stage):
                logger.info("Stage %s disabled", stage.value)
                artifacts = artifacts.model_copy(update=substitute_for(stage, request))
                continue

            logger.info("Stage %s started", stage.value)
            produced: Produced = {}
            try:
                self._handlers[stage](request, artifacts, produced)
            except SchemaSmithError as e:
                error = StageError(stage.value, e)
                logger.error("Stage %s failed: %s", stage.value, e)  # noqa: TRY400
                return PipelineReport(
                    success=False,
                    target=request.target,
                    progress=progress.advance(stage, StageStatus.FAILED),
                    artifacts=artifacts.model_copy(update=produced),
                    failed_stage=stage,
                    error=str(error),
                    error_kind=error.kind,
                )
            artifacts = artifacts.model_copy(update=produced)
            progress = progress.advance(stage, StageStatus.COMPLETED)
            logger.info("Stage %s completed", stage.value)

        publish_url = artifacts.publish.url if artifacts.publish is not None else None
        logger.info("Pipeline for %s finished", request.target)
        return PipelineReport(
            success=True,
            target=request.target,
            progress=progress,
            artifacts=artifacts,
            publish_url=publish_url,
        )

    # --- Stages ---

    def _generate_inputs(
        self,
        request: PipelineRequest,
        artifacts: PipelineArtifacts,
        produced: Produced,
    ) -> None:
        if self.input_loop is None:
            msg = "Input generation is enabled but no chat model is configured"
            raise ConfigurationError(msg)
        accepted = self.input_loop.run(request.target)
        produced["test_inputs"] = accepted.inputs
        produced["input_validation"] = accepted.validation
        produced["input_attempts"] = accepted.attempts

    def _generate_schema(
        self,
        request: PipelineRequest,
        artifacts: PipelineArtifacts,
        produced: Produced,
    ) -> None:
        if self.synthesizer is None:
            msg = "Schema generation is enabled but no workload platform is configured"
            raise ConfigurationError(msg)

        if request.schema_source is SchemaSource.PRODUCTION_SAMPLE:
            result = self.synthesizer.synthesize_from_sample(request.target, request.window)
            produced["datasets_used"] = result.datasets_used
            produced["reserved_for_validation"] = result.reserved_for_validation
        else:
            if artifacts.test_inputs is None:
                msg = (
                    "Schema generation needs test inputs: enable input "
                    "generation or supply test inputs"
                )
                raise ConfigurationError(msg)
            if self.runner is None:
                msg = "Schema generation is enabled but no variant runner is configured"
                raise ConfigurationError(msg)

            results = self.runner.run_all(request.target, artifacts.test_inputs)
            produced["run_results"] = results
            reconciliation = self.runner.reconcile(results)
            logger.info("Variant runs: %s", reconciliation.summary)
            if not reconciliation.overall_success:
                msg = f"Insufficient successful runs: {reconciliation.summary}"
                raise PartialRunFailure(msg)

            handles = self.runner.collect_output_handles(results)
            produced["output_handles"] = handles
            if not handles:
                msg = "No datasets found from the variant runs"
                raise NoDataFound(msg)
            result = self.synthesizer.synthesize(handles)

        if result.schema_ is None:
            error = result.error or "Schema generation produced no schema"
            if result.no_data:
                raise NoDataFound(error)
            raise SchemaSynthesisError(error)
        produced["draft_schema"] = result.schema_

    def _enhance_schema(
        self,
        request: PipelineRequest,
        artifacts: PipelineArtifacts,
        produced: Produced,
    ) -> None:
        if artifacts.draft_schema is None:
            msg = (
                "Schema enhancement needs a draft schema: enable schema "
                "generation or supply a draft schema"
            )
            raise ConfigurationError(msg)
        if self.refiner is None:
            msg = "Schema enhancement is enabled but no chat model is configured"
            raise ConfigurationError(msg)

        refined = self.refiner.refine_or_raise(
            request.target,
            artifacts.draft_schema,
            request.want_views,
        )
        check_field_set(artifacts.draft_schema, refined)
        produced["refined_schema"] = refined

    def _validate_schema(
        self,
        request: PipelineRequest,
        artifacts: PipelineArtifacts,
        produced: Produced,
    ) -> None:
        if artifacts.refined_schema is None:
            msg = (
                "Schema validation needs a refined schema: enable schema "
                "enhancement or supply a refined schema"
            )
            raise ConfigurationError(msg)
        if self.validator is None:
            msg = "Schema validation is enabled but no workload platform is configured"
            raise ConfigurationError(msg)

        outcome = self.validator.validate(
            request.target,
            artifacts.refined_schema,
            request.window,
            artifacts.reserved_for_validation,
        )
        produced["validation"] = outcome
        _ = require_success(outcome)

    def _create_pull_request(
        self,
        request: PipelineRequest,
        artifacts: PipelineArtifacts,
        produced: Produced,
    ) -> None:
        if artifacts.refined_schema is None:
            msg = (
                "Pull request creation needs a refined schema: enable schema "
                "enhancement or supply a refined schema"
            )
            raise ConfigurationError(msg)
        if self.publisher is None:
            msg = "Pull request creation is enabled but no source-control token is configured"
            raise ConfigurationError(msg)
        if not request.repository_url:
            msg = "Pull request creation needs a repository URL"
            raise ConfigurationError(msg)

        produced["publish"] = self.publisher.publish(
            request.repository_url,
            request.target,
            artifacts.refined_schema,
            request.want_views,
        )


@contextmanager
def open_controller(
    config: PipelineConfig,
    credentials: Credentials,
    rng: random.Random | None = None,
) -> Iterator[PipelineController]:
    """Build a controller over the production clients and close them afterwards.

    Components whose credentials are missing are left out.
    """
    with ExitStack() as stack:
        platform: PlatformClient | None = None
        chat: ChatClient | None = None
        metrics: MetricsClient | None = None
        scm: GitHubClient | None = None

        if credentials.platform_token:
            platform = stack.enter_context(
                PlatformClient(
                    credentials.platform_token,
                    base_url=config.platform_url,
                    timeout=config.request_timeout,
                )
            )
            chat = stack.enter_context(
                ChatClient(
                    credentials.platform_token,
                    base_url=config.llm_url,
                    model=config.llm_model,
                )
            )
        if credentials.metrics_api_key:
            metrics = stack.enter_context(
                MetricsClient(
                    credentials.metrics_api_key,
                    base_url=config.metrics_url,
                    query_id=config.metrics_query_id,
                    poll_interval=config.poll_interval,
                    poll_attempts=config.poll_attempts,
                    timeout=config.request_timeout,
                )
            )
        if credentials.github_token:
            scm = stack.enter_context(
                GitHubClient(
                    credentials.github_token,
                    base_url=config.github_api_url,
                    timeout=config.request_timeout,
                )
            )

        yield build_controller(config, platform=platform, chat=chat, metrics=metrics, scm=scm, rng=rng)


def build_controller(  # noqa: PLR0913
    config: PipelineConfig,
    *,
    platform: WorkloadPlatform | None = None,
    chat: ChatModel | None = None,
    metrics: MetricsBackend | None = None,
    scm: SourceControl | None = None,
    rng: random.Random | None = None,
) -> PipelineController:
    """Wire components over any collaborators, production or in-memory."""
    discovery = (
        DatasetDiscovery(platform, metrics)
        if platform is not None and metrics is not None
        else None
    )
    input_loop = runner = synthesizer = validator = refiner = publisher = None

    if chat is not None:
        input_loop = InputGenerationLoop(
            InputGenerator(chat, temperature=config.input_temperature)
        )
        refiner = SchemaRefiner(
            chat,
            temperature=config.refine_temperature,
            max_tokens=config.refine_max_tokens,
        )
    if platform is not None:
        runner = VariantRunner(
            platform,
            timeout=config.run_timeout,
            memory=config.run_memory,
        )
        synthesizer = SchemaSynthesizer(
            platform,
            generator_id=config.schema_generator_id,
            discovery=discovery,
            sample_fraction=config.sample_fraction,
            sample_cap=config.sample_cap,
            rng=rng,
            timeout=config.run_timeout,
            memory=config.run_memory,
        )
        validator = SchemaValidator(
            platform,
            discovery=discovery,
            validator_id=config.schema_validator_id,
            timeout=config.run_timeout,
            memory=config.run_memory,
        )
    if scm is not None:
        publisher = Publisher(
            scm,
            metadata_filename=config.metadata_filename,
            artifact_filename=config.artifact_filename,
        )

    return PipelineController(
        input_loop=input_loop,
        runner=runner,
        synthesizer=synthesizer,
        refiner=refiner,
        validator=validator,
        publisher=publisher,
    )
