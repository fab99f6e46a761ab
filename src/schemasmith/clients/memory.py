# Copyright (c) Syntropy Systems
"""In-memory collaborators.

Used by the test suite and for dry runs. Each class implements the matching
protocol from :mod:`schemasmith.clients.protocols` and records the calls it
received.
"""
from __future__ import annotations

import copy
import hashlib
import itertools
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Union

from schemasmith.errors import LLMError, PlatformError, SourceControlError
from schemasmith.models import PullRequestInfo, RepoEntry, RepoFile, WorkloadRun

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from schemasmith.models import JSONValue, QueryWindow, RepositoryRef


# --- Workload platform ---


@dataclass
class ScriptedRun:
    """What one in-memory run does.

    Attributes:
        status: Terminal status reported for the run
        items: Output items; when not None a dataset is created for them
        raises: Exception raised instead of starting a run
        delay: Seconds to block before finishing
        handle_on_requery: Hide the output handle until the run is fetched again

    """

    status: str = "SUCCEEDED"
    items: list[JSONValue] | None = None
    raises: Exception | None = None
    delay: float = 0.0
    handle_on_requery: bool = False


RunHandler = Callable[["JSONValue"], ScriptedRun]


class InMemoryPlatform:
    """Workload platform whose workloads are Python callables."""

    def __init__(
        self,
        datasets: Mapping[str, list[JSONValue]] | None = None,
        workload_ids: Mapping[str, str] | None = None,
    ) -> None:
        self.datasets: dict[str, list[JSONValue]] = {
            handle: list(items) for handle, items in (datasets or {}).items()
        }
        self.workload_ids: dict[str, str] = dict(workload_ids or {})
        self.runs: dict[str, WorkloadRun] = {}
        self.calls: list[tuple[str, JSONValue]] = []
        self._handlers: dict[str, RunHandler] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def register(self, workload_id: str, handler: RunHandler | ScriptedRun) -> None:
        """Make ``workload_id`` runnable; a fixed ScriptedRun applies to every input."""
        if isinstance(handler, ScriptedRun):
            script = handler
            self._handlers[workload_id] = lambda _input: script
        else:
            self._handlers[workload_id] = handler

    def calls_to(self, workload_id: str) -> list[JSONValue]:
        """Inputs the workload was started with, in call order."""
        return [run_input for wid, run_input in self.calls if wid == workload_id]

    def run_workload(
        self,
        workload_id: str,
        run_input: JSONValue,
        *,
        timeout: int | None = None,
        memory: int | None = None,
        on_start: Callable[[WorkloadRun], None] | None = None,
    ) -> WorkloadRun:
        if not isinstance(run_input, dict):
            msg = f"Run input for {workload_id} must be a JSON object, got {type(run_input).__name__}"
            raise PlatformError(msg)
        with self._lock:
            self.calls.append((workload_id, copy.deepcopy(run_input)))
            handler = self._handlers.get(workload_id)
        if handler is None:
            msg = f"Workload {workload_id} was not found"
            raise PlatformError(msg, status_code=404)

        script = handler(run_input)
        if script.raises is not None:
            time.sleep(script.delay)
            raise script.raises

        with self._lock:
            number = next(self._counter)
            run_id = f"run-{number}"
            self.runs[run_id] = WorkloadRun(run_id=run_id, status="RUNNING")
        if on_start is not None:
            on_start(self.runs[run_id])

        if script.delay:
            time.sleep(script.delay)

        with self._lock:
            handle = None
            if script.items is not None:
                handle = f"dataset-{number}"
                self.datasets[handle] = copy.deepcopy(script.items)
            run = WorkloadRun(run_id=run_id, status=script.status, output_handle=handle)
            self.runs[run_id] = run

        if script.handle_on_requery:
            return WorkloadRun(run_id=run_id, status=script.status)
        return run

    def get_run(self, run_id: str) -> WorkloadRun:
        with self._lock:
            run = self.runs.get(run_id)
        if run is None:
            msg = f"Run {run_id} was not found"
            raise PlatformError(msg, status_code=404)
        return run

    def resolve_workload_id(self, name: str) -> str:
        workload_id = self.workload_ids.get(name)
        if workload_id is None:
            msg = f"Workload {name} was not found"
            raise PlatformError(msg, status_code=404)
        return workload_id

    def get_dataset_item_count(self, handle: str) -> int:
        return len(self._dataset(handle))

    def list_dataset_items(
        self,
        handle: str,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[JSONValue]:
        items = self._dataset(handle)[offset:]
        if limit is not None:
            items = items[:limit]
        return copy.deepcopy(items)

    def _dataset(self, handle: str) -> list[JSONValue]:
        with self._lock:
            items = self.datasets.get(handle)
        if items is None:
            msg = f"Dataset {handle} was not found"
            raise PlatformError(msg, status_code=404)
        return items


# --- LLM ---


Reply = Union[str, Exception]


class ScriptedChatModel:
    """Chat model that answers from a script of replies.

    ``replies`` is either a sequence consumed in order or a callable of the
    prompt. An exception in the sequence is raised instead of answered.
    """

    def __init__(self, replies: Sequence[Reply] | Callable[[str], str]) -> None:
        self.prompts: list[str] = []
        self.params: list[dict[str, float | int | None]] = []
        if callable(replies):
            self._respond: Callable[[str], str] | None = replies
            self._queue: list[Reply] = []
        else:
            self._respond = None
            self._queue = list(replies)

    def complete(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        self.prompts.append(prompt)
        self.params.append({"temperature": temperature, "max_tokens": max_tokens})
        if self._respond is not None:
            return self._respond(prompt)
        if not self._queue:
            msg = "Scripted chat model has no replies left"
            raise LLMError(msg)
        reply = self._queue.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


# --- Metrics backend ---


class InMemoryMetrics:
    """Metrics backend that returns fixed rows per workload id."""

    def __init__(
        self,
        rows: Mapping[str, list[dict[str, JSONValue]]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.rows = {key: list(value) for key, value in (rows or {}).items()}
        self.error = error
        self.calls: list[tuple[str, QueryWindow]] = []

    def execute(self, workload_id: str, window: QueryWindow) -> list[dict[str, JSONValue]]:
        self.calls.append((workload_id, window))
        if self.error is not None:
            raise self.error
        rows = self.rows.get(workload_id)
        if rows is None:
            return []
        return copy.deepcopy(rows[: window.limit])


# --- Source control ---


def _sha(*parts: str) -> str:
    digest = hashlib.sha1()  # noqa: S324
    for part in parts:
        digest.update(part.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


@dataclass
class _Commit:
    tree: str
    parents: list[str]
    message: str


@dataclass
class InMemorySourceControl:
    """Git-like repository store with optional failure injection.

    ``fail_on`` names protocol methods that raise ``SourceControlError``
    instead of doing their work.
    """

    files: dict[str, str] = field(default_factory=dict)
    repository: str = "acme/demo-scraper"
    default_branch: str = "main"
    fail_on: set[str] = field(default_factory=set)

    blobs: dict[str, str] = field(default_factory=dict, init=False)
    trees: dict[str, dict[str, str]] = field(default_factory=dict, init=False)
    commits: dict[str, _Commit] = field(default_factory=dict, init=False)
    branches: dict[str, str] = field(default_factory=dict, init=False)
    pull_requests: list[PullRequestInfo] = field(default_factory=list, init=False)
    operations: list[str] = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        tree = self._store_tree(dict(self.files))
        commit = _sha("commit", tree)
        self.commits[commit] = _Commit(tree=tree, parents=[], message="Initial commit")
        self.branches[self.default_branch] = commit

    # --- Inspection helpers ---

    def tree_files(self, branch: str) -> dict[str, str]:
        """Path to content map of a branch head."""
        commit = self.commits[self.branches[branch]]
        return {path: self.blobs[sha] for path, sha in self.trees[commit.tree].items()}

    def _store_tree(self, files: Mapping[str, str]) -> str:
        entries: dict[str, str] = {}
        for path, content in files.items():
            blob = _sha("blob", content)
            self.blobs[blob] = content
            entries[path] = blob
        tree = _sha("tree", *sorted(f"{p}:{s}" for p, s in entries.items()))
        self.trees[tree] = entries
        return tree

    def _enter(self, operation: str, repo: RepositoryRef) -> None:
        self.operations.append(operation)
        if operation in self.fail_on:
            msg = f"Injected failure in {operation}"
            raise SourceControlError(msg, status_code=500)
        if repo.full_name != self.repository:
            msg = f"Repository {repo.full_name} was not found"
            raise SourceControlError(msg, status_code=404)

    def _head(self, branch: str) -> str:
        sha = self.branches.get(branch)
        if sha is None:
            msg = f"Branch {branch} was not found"
            raise SourceControlError(msg, status_code=404)
        return sha

    # --- Protocol ---

    def get_default_branch(self, repo: RepositoryRef) -> str:
        self._enter("get_default_branch", repo)
        return self.default_branch

    def get_file(self, repo: RepositoryRef, path: str, ref: str) -> RepoFile | None:
        self._enter("get_file", repo)
        files = self.tree_files_at(ref)
        if path not in files:
            return None
        return RepoFile(path=path, content=files[path], sha=_sha("blob", files[path]))

    def list_directory(self, repo: RepositoryRef, path: str, ref: str) -> list[RepoEntry]:
        self._enter("list_directory", repo)
        prefix = f"{path.strip('/')}/" if path.strip("/") else ""
        seen: dict[str, str] = {}
        for file_path in self.tree_files_at(ref):
            if not file_path.startswith(prefix):
                continue
            rest = file_path[len(prefix) :]
            name, _, remainder = rest.partition("/")
            seen.setdefault(name, "dir" if remainder else "file")
        return [
            RepoEntry(name=name, path=f"{prefix}{name}", type=kind)
            for name, kind in sorted(seen.items())
        ]

    def tree_files_at(self, ref: str) -> dict[str, str]:
        """Files at a branch name or commit sha."""
        commit_sha = self.branches.get(ref, ref)
        commit = self.commits.get(commit_sha)
        if commit is None:
            msg = f"Reference {ref} was not found"
            raise SourceControlError(msg, status_code=404)
        return {path: self.blobs[sha] for path, sha in self.trees[commit.tree].items()}

    def get_branch_head(self, repo: RepositoryRef, branch: str) -> str:
        self._enter("get_branch_head", repo)
        return self._head(branch)

    def create_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        self._enter("create_branch", repo)
        if branch in self.branches:
            msg = "Reference already exists"
            raise SourceControlError(msg, status_code=422)
        self.branches[branch] = sha

    def create_blob(self, repo: RepositoryRef, content: str) -> str:
        self._enter("create_blob", repo)
        sha = _sha("blob", content)
        self.blobs[sha] = content
        return sha

    def get_commit_tree(self, repo: RepositoryRef, commit_sha: str) -> str:
        self._enter("get_commit_tree", repo)
        commit = self.commits.get(commit_sha)
        if commit is None:
            msg = f"Commit {commit_sha} was not found"
            raise SourceControlError(msg, status_code=404)
        return commit.tree

    def create_tree(
        self,
        repo: RepositoryRef,
        base_tree: str,
        blobs: Mapping[str, str],
    ) -> str:
        self._enter("create_tree", repo)
        entries = dict(self.trees[base_tree])
        entries.update(blobs)
        tree = _sha("tree", *sorted(f"{p}:{s}" for p, s in entries.items()))
        self.trees[tree] = entries
        return tree

    def create_commit(
        self,
        repo: RepositoryRef,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
    ) -> str:
        self._enter("create_commit", repo)
        sha = _sha("commit", tree_sha, message, *parents)
        self.commits[sha] = _Commit(tree=tree_sha, parents=list(parents), message=message)
        return sha

    def update_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        self._enter("update_branch", repo)
        _ = self._head(branch)
        self.branches[branch] = sha

    def create_pull_request(
        self,
        repo: RepositoryRef,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
    ) -> PullRequestInfo:
        self._enter("create_pull_request", repo)
        _ = self._head(head)
        _ = self._head(base)
        number = len(self.pull_requests) + 1
        pull = PullRequestInfo(
            number=number,
            html_url=f"https://github.com/{repo.full_name}/pull/{number}",
            title=title,
        )
        self.pull_requests.append(pull)
        return pull


def rows_for(handles: Iterable[str], key: str = "default_dataset_id") -> list[dict[str, JSONValue]]:
    """Build metrics rows carrying ``handles`` under ``key``."""
    return [{key: handle} for handle in handles]
