# Copyright (c) Syntropy Systems
"""Publishing a schema to source control."""

from .artifact import build_artifact, format_label, overview_view
from .metadata import locate_metadata_file, patch_metadata
from .publisher import Publisher, PublishStep
from .repository import parse_repository_url

__all__ = [
    "PublishStep",
    "Publisher",
    "build_artifact",
    "format_label",
    "locate_metadata_file",
    "overview_view",
    "parse_repository_url",
    "patch_metadata",
]
