# Copyright (c) Syntropy Systems
"""Source-control client (GitHub REST API)."""
from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from schemasmith.clients.base import ServiceClient
from schemasmith.errors import SourceControlError
from schemasmith.models import PullRequestInfo, RepoEntry, RepoFile
from schemasmith.models.base import ApiModel

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    import httpx

    from schemasmith.models import RepositoryRef

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.github.com"
USER_AGENT = "schemasmith"

HTTP_NOT_FOUND = 404


class _Repository(ApiModel):
    default_branch: str


class _ContentEntry(ApiModel):
    name: str
    path: str
    type: str
    sha: str | None = None
    content: str | None = None
    encoding: str | None = None


def _content_entry(data: object, path: str) -> _ContentEntry:
    try:
        return _ContentEntry.model_validate(data)
    except ValidationError as e:
        msg = f"Unexpected GitHub contents response for {path}: {e}"
        raise SourceControlError(msg) from e


class _CommitRef(ApiModel):
    sha: str


class _Branch(ApiModel):
    commit: _CommitRef


class _Sha(ApiModel):
    sha: str


class _GitCommit(ApiModel):
    sha: str
    tree: _Sha


class _PullRequest(ApiModel):
    number: int
    html_url: str
    title: str | None = None


class GitHubClient(ServiceClient):
    """Blocking GitHub REST client for the operations publishing needs."""

    error_class = SourceControlError
    service_name = "GitHub"

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Personal access or app token with contents and pull
                request write permission
            base_url: API base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport

        """
        super().__init__(
            base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            transport=transport,
        )

    # --- Reads ---

    def get_default_branch(self, repo: RepositoryRef) -> str:
        """Name of the repository's default branch."""
        result = self._request(
            "GET",
            f"/repos/{repo.full_name}",
            response_model=_Repository,
        )
        return result.default_branch

    def _get_content(self, repo: RepositoryRef, path: str, ref: str) -> object | None:
        try:
            return self._request(
                "GET",
                f"/repos/{repo.full_name}/contents/{path}",
                params={"ref": ref},
            )
        except SourceControlError as e:
            if e.status_code == HTTP_NOT_FOUND:
                return None
            raise

    def get_file(self, repo: RepositoryRef, path: str, ref: str) -> RepoFile | None:
        """Read a file, or None when nothing (or a directory) is at ``path``."""
        data = self._get_content(repo, path, ref)
        if data is None or isinstance(data, list):
            return None
        entry = _content_entry(data, path)
        if entry.type != "file" or entry.content is None:
            return None
        if entry.encoding != "base64":
            return RepoFile(path=entry.path, content=entry.content, sha=entry.sha)
        try:
            content = base64.b64decode(entry.content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            msg = f"Cannot decode {entry.path} in {repo.full_name}: {e}"
            raise SourceControlError(msg) from e
        return RepoFile(path=entry.path, content=content, sha=entry.sha)

    def list_directory(self, repo: RepositoryRef, path: str, ref: str) -> list[RepoEntry]:
        """List a directory, or an empty list when it does not exist."""
        data = self._get_content(repo, path, ref)
        if not isinstance(data, list):
            return []
        entries = [_content_entry(item, path) for item in data]
        return [RepoEntry(name=e.name, path=e.path, type=e.type) for e in entries]

    def get_branch_head(self, repo: RepositoryRef, branch: str) -> str:
        """Commit sha the branch points at."""
        result = self._request(
            "GET",
            f"/repos/{repo.full_name}/branches/{branch}",
            response_model=_Branch,
        )
        return result.commit.sha

    def get_commit_tree(self, repo: RepositoryRef, commit_sha: str) -> str:
        """Tree sha of a commit."""
        result = self._request(
            "GET",
            f"/repos/{repo.full_name}/git/commits/{commit_sha}",
            response_model=_GitCommit,
        )
        return result.tree.sha

    # --- Writes ---

    def create_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        """Create a branch pointing at ``sha``."""
        _ = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/refs",
            json={"ref": f"refs/heads/{branch}", "sha": sha},
        )
        logger.info("Created branch %s in %s", branch, repo.full_name)

    def create_blob(self, repo: RepositoryRef, content: str) -> str:
        """Store file content and return the blob sha."""
        result = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/blobs",
            json={"content": content, "encoding": "utf-8"},
            response_model=_Sha,
        )
        return result.sha

    def create_tree(
        self,
        repo: RepositoryRef,
        base_tree: str,
        blobs: Mapping[str, str],
    ) -> str:
        """Create a tree layering ``{path: blob_sha}`` over ``base_tree``."""
        result = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/trees",
            json={
                "base_tree": base_tree,
                "tree": [
                    {"path": path, "mode": "100644", "type": "blob", "sha": sha}
                    for path, sha in blobs.items()
                ],
            },
            response_model=_Sha,
        )
        return result.sha

    def create_commit(
        self,
        repo: RepositoryRef,
        message: str,
        tree_sha: str,
        parents: Sequence[str],
    ) -> str:
        """Create a commit and return its sha."""
        result = self._request(
            "POST",
            f"/repos/{repo.full_name}/git/commits",
            json={"message": message, "tree": tree_sha, "parents": list(parents)},
            response_model=_Sha,
        )
        return result.sha

    def update_branch(self, repo: RepositoryRef, branch: str, sha: str) -> None:
        """Move a branch pointer to ``sha``."""
        _ = self._request(
            "PATCH",
            f"/repos/{repo.full_name}/git/refs/heads/{branch}",
            json={"sha": sha},
        )

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
        result = self._request(
            "POST",
            f"/repos/{repo.full_name}/pulls",
            json={"title": title, "body": body, "head": head, "base": base},
            response_model=_PullRequest,
        )
        logger.info("Opened pull request #%d in %s", result.number, repo.full_name)
        return PullRequestInfo(number=result.number, html_url=result.html_url, title=result.title)
