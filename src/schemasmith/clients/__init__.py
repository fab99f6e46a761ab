# Copyright (c) Syntropy Systems
"""Clients for the remote collaborators and their in-memory stand-ins."""

from .github import GitHubClient
from .llm import ChatClient, extract_json
from .metrics import MetricsClient
from .platform import PlatformClient
from .protocols import ChatModel, MetricsBackend, SourceControl, WorkloadPlatform

__all__ = [
    "ChatClient",
    "ChatModel",
    "GitHubClient",
    "MetricsBackend",
    "MetricsClient",
    "PlatformClient",
    "SourceControl",
    "WorkloadPlatform",
    "extract_json",
]
