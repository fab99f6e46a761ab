# Copyright (c) Syntropy Systems
"""Parsing of repository references."""
from __future__ import annotations

import re
from urllib.parse import urlparse

from schemasmith.errors import RepositoryReferenceError
from schemasmith.models import RepositoryRef

_SSH_FORM = re.compile(r"^[\w.-]+@[\w.-]+:(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?/?$")
_SHORT_FORM = re.compile(r"^(?P<owner>[\w.-]+)/(?P<name>[\w.-]+?)(?:\.git)?$")


def parse_repository_url(reference: str) -> RepositoryRef:
    """Parse ``owner/name`` out of a repository URL.

    Accepts ``https://host/owner/name`` (extra path segments such as
    ``/tree/main`` are ignored), ``git@host:owner/name.git`` and the bare
    ``owner/name`` form.

    Raises:
        RepositoryReferenceError: If no owner and name can be found.

    """
    value = reference.strip()
    if not value:
        msg = "Repository reference is empty"
        raise RepositoryReferenceError(msg)

    match = _SSH_FORM.match(value) or _SHORT_FORM.match(value)
    if match:
        return RepositoryRef(owner=match["owner"], name=match["name"])

    parsed = urlparse(value)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        parts = [part for part in parsed.path.split("/") if part]
        if len(parts) >= 2:
            name = parts[1].removesuffix(".git")
            if name:
                return RepositoryRef(owner=parts[0], name=name)

    msg = f"Invalid repository URL: {reference}"
    raise RepositoryReferenceError(msg)
