# Copyright (c) Syntropy Systems
"""Publishing a schema as a pull request.

Steps run strictly in order and any failure aborts the publish:

    parse repo ref -> resolve default branch -> locate metadata file ->
    build artifact -> create branch -> commit files -> open pull request

Both files land in one commit made from one tree, so they appear together
or not at all. A failure after the branch exists leaves that branch behind
with no pull request referencing it, and is reported as
``PublishAtomicityFailure``.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Callable

from schemasmith.errors import PublishAtomicityFailure, PublishError, SourceControlError
from schemasmith.models import FileChange, PublishResult
from schemasmith.publish.artifact import build_artifact, render_artifact
from schemasmith.publish.metadata import (
    BOM,
    METADATA_FILENAME,
    existing_views,
    load_metadata,
    locate_metadata_file,
    patch_metadata,
    sibling_path,
)
from schemasmith.publish.repository import parse_repository_url

if TYPE_CHECKING:
    from collections.abc import Sequence

    from schemasmith.clients.protocols import SourceControl
    from schemasmith.models import JSONObject, RepositoryRef

logger = logging.getLogger(__name__)

ARTIFACT_FILENAME = "dataset_schema.json"
BRANCH_PREFIX = "dataset-from-ai"


class PublishStep(str, Enum):
    """Steps of a publish, in order."""

    PARSE_REPO_REF = "parse repository reference"
    RESOLVE_DEFAULT_BRANCH = "resolve default branch"
    LOCATE_METADATA_FILE = "locate metadata file"
    BUILD_ARTIFACT = "build artifact"
    CREATE_BRANCH = "create branch"
    COMMIT_FILES = "commit files"
    OPEN_PULL_REQUEST = "open pull request"


class Publisher:
    """Commits the schema artifact and the patched metadata, then opens a PR."""

    def __init__(
        self,
        scm: SourceControl,
        metadata_filename: str = METADATA_FILENAME,
        artifact_filename: str = ARTIFACT_FILENAME,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.scm = scm
        self.metadata_filename = metadata_filename
        self.artifact_filename = artifact_filename
        self._clock = clock

    @contextmanager
    def _step(self, step: PublishStep, branch: str | None = None) -> Iterator[None]:
        """Log a step and give source-control failures the step's context.

        Once ``branch`` exists every failure becomes a PublishAtomicityFailure.
        """
        logger.info("Publish: %s", step.value)
        try:
            yield
        except PublishError:
            raise
        except SourceControlError as e:
            msg = f"Failed to {step.value}: {e}"
            if branch is not None:
                raise PublishAtomicityFailure(msg, branch) from e
            raise PublishError(msg) from e

    def branch_name(self) -> str:
        """Name of a new, time-stamped branch."""
        return f"{BRANCH_PREFIX}-{int(self._clock() * 1000)}"

    def publish(
        self,
        repository_url: str,
        target: str,
        schema: JSONObject,
        want_views: bool = False,
    ) -> PublishResult:
        """Publish ``schema`` for ``target`` to the repository.

        Returns:
            The branch, commit, written files and pull request; only
            returned when every step succeeded.

        Raises:
            PublishError: If a step before branch creation failed.
            PublishAtomicityFailure: If a step after branch creation failed.

        """
        with self._step(PublishStep.PARSE_REPO_REF):
            repo = parse_repository_url(repository_url)
        with self._step(PublishStep.RESOLVE_DEFAULT_BRANCH):
            base = self.scm.get_default_branch(repo)
        with self._step(PublishStep.LOCATE_METADATA_FILE):
            metadata_file = locate_metadata_file(
                self.scm, repo, base, target, self.metadata_filename
            )

        with self._step(PublishStep.BUILD_ARTIFACT):
            metadata = load_metadata(metadata_file.content.lstrip(BOM))
            artifact = build_artifact(schema, existing_views(metadata), want_views)
            artifact_path = sibling_path(metadata_file.path, self.artifact_filename)
            files = [
                FileChange(
                    path=metadata_file.path,
                    content=patch_metadata(metadata_file.content, f"./{self.artifact_filename}"),
                ),
                FileChange(path=artifact_path, content=render_artifact(artifact)),
            ]
        display_name = metadata.get("name") if isinstance(metadata.get("name"), str) else None
        name = str(display_name or target)

        branch = self.branch_name()
        with self._step(PublishStep.CREATE_BRANCH):
            head = self.scm.get_branch_head(repo, base)
            self.scm.create_branch(repo, branch, head)

        with self._step(PublishStep.COMMIT_FILES, branch):
            commit_sha = self.commit_files(repo, branch, files, commit_message(name))

        with self._step(PublishStep.OPEN_PULL_REQUEST, branch):
            pull_request = self.scm.create_pull_request(
                repo,
                title=f"Add dataset schema: {name}",
                body=pull_request_body(target, [change.path for change in files]),
                head=branch,
                base=base,
            )

        logger.info("Opened %s", pull_request.url)
        return PublishResult(
            files=[change.path for change in files],
            branch=branch,
            base_branch=base,
            commit_sha=commit_sha,
            pull_request=pull_request,
        )

    def commit_files(
        self,
        repo: RepositoryRef,
        branch: str,
        files: Sequence[FileChange],
        message: str,
    ) -> str:
        """Commit ``files`` to ``branch`` as one commit and return its sha."""
        parent = self.scm.get_branch_head(repo, branch)
        base_tree = self.scm.get_commit_tree(repo, parent)
        blobs = {change.path: self.scm.create_blob(repo, change.content) for change in files}
        tree = self.scm.create_tree(repo, base_tree, blobs)
        commit = self.scm.create_commit(repo, message, tree, [parent])
        self.scm.update_branch(repo, branch, commit)
        return commit


def commit_message(name: str) -> str:
    """Message of the publish commit."""
    return (
        f"Add dataset schema for {name}\n\n"
        "- Add dataset_schema.json with field definitions and views\n"
        "- Point storages.dataset in actor.json at the dataset schema\n"
        "- Move view configuration from actor.json into the dataset schema\n"
    )


def pull_request_body(target: str, paths: Sequence[str]) -> str:
    """Body of the publish pull request."""
    changed = "\n".join(f"- `{path}`" for path in paths)
    return (
        f"This adds a dataset schema for `{target}`.\n\n"
        f"**Changed files:**\n{changed}\n\n"
        "The schema was inferred from workload output and validated "
        "against recent production datasets."
    )
