# Copyright (c) Syntropy Systems
"""Interfaces of the remote collaborators.

Each interface has one production adapter (httpx) and one in-memory adapter
in :mod:`schemasmith.clients.memory`. Components receive them through their
constructors.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, Sequence

    from schemasmith.models import (
        JSONValue,
        PullRequestInfo,
        QueryWindow,
        RepoEntry,
        RepoFile,
        RepositoryRef,
        WorkloadRun,
    )


class WorkloadPlatform(Protocol):
    """Runs workloads and serves their output datasets."""

    def run_workload(
        self,
        workload_id: str,
        run_input: JSONValue,
        *,
        timeout: int | None = None,
        memory: int | None = None,
        on_start: Callable[[WorkloadRun], None] | None = None,
    ) -> WorkloadRun:
        """Start a run and block until it reaches a terminal status.

        ``on_start`` receives the run record as soon as the run exists, before
        waiting begins.
        """
        ...

    def get_run(self, run_id: str) -> WorkloadRun:
        """Fetch the current record of a run."""
        ...

    def resolve_workload_id(self, name: str) -> str:
        """Resolve a technical name such as ``owner/name`` to a platform id."""
        ...

    def get_dataset_item_count(self, handle: str) -> int:
        """Number of items stored in a dataset."""
        ...

    def list_dataset_items(
        self,
        handle: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[JSONValue]:
        """Read items from a dataset."""
        ...


class ChatModel(Protocol):
    """Chat completion endpoint of a large language model."""

    def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Send one user prompt and return the assistant text."""
        ...


class MetricsBackend(Protocol):
    """Query backend that lists recent production output datasets."""

    def execute(self, workload_id: str, window: QueryWindow) -> list[dict[str, JSONValue]]:
        """Run the recent-datasets query and return its rows."""
        ...


class SourceControl(Protocol):
    """The subset of a source-control API used to publish a schema."""

    def get_default_branch(self, repo: RepositoryRef) -> str:
        """Name of the repository's default branch."""
        ...

    def get_file(self, repo: RepositoryRef, path: str, ref: str) -> RepoFile | None:
        """Read a file, or None when it does not exist."""
        ...

    def list_directory(self, repo: RepositoryRef, path: str, ref: str) -> list[RepoEntry]:
        """List a directory, or an empty list when it does not exist."""
        ...

    def get_branch_head(self, repo: RepositoryRef, branch: str) -> str:
        """Commit sha the branch points at."""
        ...

    def create_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        """Create a branch pointing at ``sha``."""
        ...

    def create_blob(self, repo: RepositoryRef, content: str) -> str:
        """Store file content and return the blob sha."""
        ...

    def get_commit_tree(self, repo: RepositoryRef, commit_sha: str) -> str:
        """Tree sha of a commit."""
        ...

    def create_tree(
        self,
        repo: RepositoryRef,
        base_tree: str,
        blobs: Mapping[str, str],
    ) -> str:
        """Create a tree layering ``{path: blob_sha}`` over ``base_tree``."""
        ...

    def create_commit(
        self,
        repo: RepositoryRef,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
    ) -> str:
        """Create a commit and return its sha."""
        ...

    def update_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        """Move a branch pointer to ``sha``."""
        ...

    def create_pull_request(
        self,
        repo: RepositoryRef,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestInfo:
        """Open a pull request from ``head`` into ``base``."""
        ...
