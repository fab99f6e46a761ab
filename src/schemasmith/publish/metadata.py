# Copyright (c) Syntropy Systems
"""Locating and patching the workload metadata file.

The patch edits the original text in place: it removes the top-level
``views`` member and points ``storages.dataset`` at the schema artifact.
Everything else, including key order, indentation and line endings, is left
as it was.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, cast

from schemasmith.errors import PublishError, PublishLocationNotFound

if TYPE_CHECKING:
    from schemasmith.clients.protocols import SourceControl
    from schemasmith.models import JSONObject, RepoFile, RepositoryRef

logger = logging.getLogger(__name__)

BOM = "\ufeff"
METADATA_FILENAME = "actor.json"

ROOT_DIRS = ("", ".actor", "src", "lib", "dist", "build")
MONOREPO_DIRS = ("packages", "apps", "actors", "libs", "modules", "services", "components")


def workload_name(target: str) -> str:
    """Name part of a technical name: ``acme/demo-scraper`` -> ``demo-scraper``."""
    return target.replace("~", "/").rstrip("/").rsplit("/", 1)[-1]


def root_candidates(filename: str = METADATA_FILENAME) -> list[str]:
    """Fixed single-workload locations, in search order."""
    return [f"{directory}/{filename}" if directory else filename for directory in ROOT_DIRS]


def workload_candidates(directory: str, name: str, filename: str = METADATA_FILENAME) -> list[str]:
    """Locations inside a monorepo workload directory, in search order."""
    return [f"{directory}/{name}/{filename}", f"{directory}/{name}/.actor/{filename}"]


def locate_metadata_file(
    scm: SourceControl,
    repo: RepositoryRef,
    ref: str,
    target: str,
    filename: str = METADATA_FILENAME,
) -> RepoFile:
    """Find the metadata file for ``target``.

    Searches the fixed root locations first, then the subdirectory named
    after the workload in each common monorepo directory. The first match
    wins. Directories of other workloads are never considered.

    Raises:
        PublishLocationNotFound: If no candidate location holds the file.

    """
    tried: list[str] = []
    for path in root_candidates(filename):
        tried.append(path)
        found = scm.get_file(repo, path, ref)
        if found is not None:
            logger.info("Found metadata file at %s", path)
            return found

    name = workload_name(target)
    root_dirs = {entry.name for entry in scm.list_directory(repo, "", ref) if entry.type == "dir"}
    for directory in MONOREPO_DIRS:
        if directory not in root_dirs:
            continue
        entries = scm.list_directory(repo, directory, ref)
        matches = [e.name for e in entries if e.type == "dir" and e.name.lower() == name.lower()]
        for match in matches:
            for path in workload_candidates(directory, match, filename):
                tried.append(path)
                found = scm.get_file(repo, path, ref)
                if found is not None:
                    logger.info("Found metadata file at %s", path)
                    return found

    msg = (
        f"{filename} not found in any known location of {repo.full_name} "
        f"(searched {len(tried)} paths)"
    )
    raise PublishLocationNotFound(msg)


def sibling_path(metadata_path: str, filename: str) -> str:
    """Path of ``filename`` in the same directory as the metadata file."""
    directory, _, _ = metadata_path.rpartition("/")
    return f"{directory}/{filename}" if directory else filename


def load_metadata(content: str) -> JSONObject:
    """Parse a metadata document.

    Raises:
        PublishError: If it is not a JSON object.

    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON in metadata file: {e}"
        raise PublishError(msg) from e
    if not isinstance(data, dict):
        msg = "Metadata file must contain a JSON object"
        raise PublishError(msg)
    return cast("JSONObject", data)


def existing_views(metadata: JSONObject) -> JSONObject | None:
    """View configuration already present in the metadata, if any.

    ``storages.dataset.views`` wins over a top-level ``views`` member.
    """
    storages = metadata.get("storages")
    if isinstance(storages, dict):
        dataset = storages.get("dataset")
        if isinstance(dataset, dict):
            views = dataset.get("views")
            if isinstance(views, dict) and views:
                return cast("JSONObject", views)
    views = metadata.get("views")
    if isinstance(views, dict) and views:
        return cast("JSONObject", views)
    return None


# --- Span-preserving JSON editing ---


@dataclass
class _Member:
    key: str
    start: int  # index of the key's opening quote
    value_start: int
    value_end: int  # one past the value's last character


@dataclass
class _Object:
    start: int  # index of "{"
    end: int  # index of "}"
    members: list[_Member]

    def get(self, key: str) -> _Member | None:
        for member in self.members:
            if member.key == key:
                return member
        return None


class _Scanner:
    """Locates JSON value spans in text already known to be valid JSON."""

    def __init__(self, text: str) -> None:
        self.text = text

    def skip_ws(self, index: int) -> int:
        while index < len(self.text) and self.text[index] in " \t\r\n":
            index += 1
        return index

    def string_end(self, index: int) -> int:
        index += 1
        while self.text[index] != '"':
            index += 2 if self.text[index] == "\\" else 1
        return index + 1

    def value_end(self, index: int) -> int:
        char = self.text[index]
        if char == '"':
            return self.string_end(index)
        if char in "{[":
            depth = 0
            while True:
                char = self.text[index]
                if char == '"':
                    index = self.string_end(index)
                    continue
                if char in "{[":
                    depth += 1
                elif char in "}]":
                    depth -= 1
                    if depth == 0:
                        return index + 1
                index += 1
        while index < len(self.text) and self.text[index] not in ",}] \t\r\n":
            index += 1
        return index

    def object_at(self, index: int) -> _Object:
        start = index
        members: list[_Member] = []
        index = self.skip_ws(index + 1)
        while self.text[index] != "}":
            key_end = self.string_end(index)
            key = cast("str", json.loads(self.text[index:key_end]))
            value_start = self.skip_ws(self.skip_ws(key_end) + 1)
            value_end = self.value_end(value_start)
            members.append(_Member(key, index, value_start, value_end))
            index = self.skip_ws(value_end)
            if self.text[index] == ",":
                index = self.skip_ws(index + 1)
        return _Object(start, index, members)


def _member_indent(text: str, obj: _Object) -> str:
    """Whitespace that precedes members of ``obj``, e.g. ``"\\n    "``."""
    if obj.members:
        first = obj.members[0]
        return text[obj.start + 1 : first.start]
    return ""


def _insert_member(text: str, obj: _Object, rendered: str) -> str:
    """Append an already-rendered ``"key": value`` member to ``obj``."""
    if not obj.members:
        return f"{text[: obj.start + 1]}{rendered}{text[obj.end :]}"
    indent = _member_indent(text, obj)
    last = obj.members[-1]
    return f"{text[: last.value_end]},{indent or ' '}{rendered}{text[last.value_end :]}"


def _remove_member(text: str, obj: _Object, member: _Member) -> str:
    position = obj.members.index(member)
    if len(obj.members) == 1:
        return f"{text[: obj.start + 1]}{text[obj.end :]}"
    if position < len(obj.members) - 1:
        following = obj.members[position + 1]
        return f"{text[: member.start]}{text[following.start :]}"
    previous = obj.members[position - 1]
    return f"{text[: previous.value_end]}{text[member.value_end :]}"


def _root(text: str) -> tuple[_Scanner, _Object]:
    scanner = _Scanner(text)
    return scanner, scanner.object_at(scanner.skip_ws(0))


def patch_metadata(content: str, artifact_ref: str) -> str:
    """Point ``storages.dataset`` at ``artifact_ref`` and drop top-level ``views``.

    A leading byte order mark is kept.

    Raises:
        PublishError: If ``content`` is not a JSON object.

    """
    bom = BOM if content.startswith(BOM) else ""
    return bom + _patch_text(content[len(bom) :], artifact_ref)


def _patch_text(text: str, artifact_ref: str) -> str:
    _ = load_metadata(text)
    reference = json.dumps(artifact_ref)

    scanner, root = _root(text)
    views = root.get("views")
    if views is not None:
        text = _remove_member(text, root, views)
        scanner, root = _root(text)

    storages = root.get("storages")
    if storages is None:
        indent = _member_indent(text, root)
        if "\n" in indent:
            unit = indent.rsplit("\n", 1)[-1] or "    "
            inner = f"{indent}{unit}"
            rendered = f'"storages": {{{inner}"dataset": {reference}{indent}}}'
        else:
            rendered = f'"storages": {{"dataset": {reference}}}'
        return _insert_member(text, root, rendered)

    if text[storages.value_start] != "{":
        return f'{text[: storages.value_start]}{{"dataset": {reference}}}{text[storages.value_end :]}'

    storage_obj = scanner.object_at(storages.value_start)
    dataset = storage_obj.get("dataset")
    if dataset is not None:
        return f"{text[: dataset.value_start]}{reference}{text[dataset.value_end :]}"
    return _insert_member(text, storage_obj, f'"dataset": {reference}')
