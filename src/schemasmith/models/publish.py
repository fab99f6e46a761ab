# Copyright (c) Syntropy Systems
"""Pydantic models for repository content and publish results."""

from __future__ import annotations

from pydantic import Field

from .base import SchemaSmithModel


class RepositoryRef(SchemaSmithModel):
    """Owner and name of a source-control repository."""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        """``owner/name`` form used in API paths."""
        return f"{self.owner}/{self.name}"


class RepoFile(SchemaSmithModel):
    """A decoded file read from a repository."""

    path: str
    content: str
    sha: str | None = None


class RepoEntry(SchemaSmithModel):
    """A directory listing entry."""

    name: str
    path: str
    type: str


class FileChange(SchemaSmithModel):
    """A file to add or overwrite in a commit."""

    path: str
    content: str


class PullRequestInfo(SchemaSmithModel):
    """A created pull request."""

    number: int
    url: str = Field(alias="html_url")
    title: str | None = None


class PublishResult(SchemaSmithModel):
    """Outcome of a successful publish."""

    files: list[str]
    branch: str
    base_branch: str
    commit_sha: str
    pull_request: PullRequestInfo

    @property
    def url(self) -> str:
        """URL of the pull request."""
        return self.pull_request.url
