# Copyright (c) Syntropy Systems
"""Exception hierarchy for schemasmith.

Pipeline errors describe why a stage could not complete. Client errors
describe why a collaborator call failed; stages wrap or report them.
"""

from __future__ import annotations


class SchemaSmithError(Exception):
    """Base class for all schemasmith errors."""


# --- Pipeline errors ---


class ConfigurationError(SchemaSmithError):
    """A required stage input or credential is missing."""


class InputGenerationError(SchemaSmithError):
    """The input generator returned something that is not a test input set."""


class ValidationExhausted(SchemaSmithError):
    """The input generation retry loop ran out of attempts."""

    def __init__(self, attempts: int, valid_variants: int, total_variants: int) -> None:
        self.attempts = attempts
        self.valid_variants = valid_variants
        self.total_variants = total_variants
        super().__init__(
            f"Failed to generate valid inputs after {attempts} attempts. "
            f"Only {valid_variants}/{total_variants} inputs were valid."
        )


class PartialRunFailure(SchemaSmithError):
    """No variant run succeeded, so no output can be inferred."""


class NoDataFound(SchemaSmithError):
    """No datasets were discoverable where at least one is required."""


class SchemaSynthesisError(SchemaSmithError):
    """Schema inference ran but produced no schema-shaped item."""


class SchemaRefinementError(SchemaSmithError):
    """The schema refiner rejected its input or its response."""


class SchemaShapeError(SchemaSmithError):
    """A schema document is malformed or its field set changed."""


class ValidationFailed(SchemaSmithError):
    """Production datasets did not all validate against the schema."""


class PublishError(SchemaSmithError):
    """Publishing failed before anything was written to the repository."""


class RepositoryReferenceError(PublishError):
    """The repository reference could not be parsed."""


class PublishLocationNotFound(PublishError):
    """No metadata file exists at any known location."""


class PublishAtomicityFailure(PublishError):
    """A publish step failed after the branch was already created.

    The branch (and any commit on it) is left orphaned and must be treated
    as inert; no pull request references it.
    """

    def __init__(self, message: str, branch: str) -> None:
        self.branch = branch
        super().__init__(message)


class StageError(SchemaSmithError):
    """A pipeline stage failed; wraps the stage-local error."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage}: {cause}")

    @property
    def kind(self) -> str:
        """Name of the underlying error class."""
        return type(self.cause).__name__


# --- Client errors ---


class ServiceClientError(SchemaSmithError):
    """Error from a remote collaborator.

    ``status_code`` is set when the collaborator answered with an HTTP error.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PlatformError(ServiceClientError):
    """Error from the workload platform."""


class LLMError(ServiceClientError):
    """Error from the LLM chat completion endpoint."""


class MetricsError(ServiceClientError):
    """Error from the metrics/query backend."""


class SourceControlError(ServiceClientError):
    """Error from the source-control API."""


class PollTimeoutError(ServiceClientError):
    """A bounded poll ran out of attempts before reaching a terminal state."""
