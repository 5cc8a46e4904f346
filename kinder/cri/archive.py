"""Reading and rewriting image tags inside docker image archives (v1, v1.1, v1.2)."""

from __future__ import annotations

import io
import json
import tarfile
from typing import IO, Callable

EditFunc = Callable[[str], str]


class ArchiveError(ValueError):
    """An image archive or its metadata could not be read or edited."""


def _dump(value) -> bytes:
    return json.dumps(value, separators=(",", ":"), sort_keys=False, ensure_ascii=False).encode()


def _parse_repositories(data: bytes) -> dict[str, dict[str, str]]:
    try:
        repositories = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ArchiveError(f"invalid repositories file: {exc}") from exc
    if repositories is None:
        return {}
    if not isinstance(repositories, dict) or not all(
        isinstance(tags, dict) or tags is None for tags in repositories.values()
    ):
        raise ArchiveError("invalid repositories file: expected an object of objects")
    return {repo: tags or {} for repo, tags in repositories.items()}


def get_archive_tags(path) -> list[str]:
    """Return the "repo:tag" image tags recorded in the archive at path."""
    try:
        with tarfile.open(path, mode="r:") as tar:
            for member in tar:
                if member.name == "repositories":
                    handle = tar.extractfile(member)
                    data = handle.read() if handle is not None else b""
                    break
            else:
                raise ArchiveError("could not find image metadata")
    except tarfile.TarError as exc:
        raise ArchiveError(str(exc)) from exc
    repositories = _parse_repositories(data)
    return [f"{repo}:{tag}" for repo, tags in repositories.items() for tag in tags]


def edit_repositories_file(raw: bytes, edit_repositories: EditFunc) -> bytes:
    """Rename the repositories in a ``repositories`` file."""
    repositories = _parse_repositories(raw)
    fixed = {edit_repositories(repo): tags for repo, tags in repositories.items()}
    return json.dumps(fixed, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode()


def edit_manifest_repositories(raw: bytes, edit_repositories: EditFunc) -> bytes:
    """Rename the repository part of every RepoTags entry in a ``manifest.json``."""
    try:
        entries = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ArchiveError(f"invalid manifest: {exc}") from exc
    if entries is None:
        return b"null"
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        raise ArchiveError("invalid manifest: expected a list of objects")

    fixed_entries = []
    for entry in entries:
        fixed_tags = []
        for tag in entry.get("RepoTags") or []:
            parts = tag.split(":")
            if len(parts) > 2:
                raise ArchiveError(f"invalid repotag: {tag}")
            parts[0] = edit_repositories(parts[0])
            fixed_tags.append(":".join(parts))
        fixed_entries.append(
            {
                "Config": entry.get("Config", ""),
                "RepoTags": fixed_tags,
                "Layers": entry.get("Layers"),
            }
        )
    return _dump(fixed_entries)


def edit_archive_repositories(reader: IO[bytes], writer: IO[bytes], edit_repositories: EditFunc) -> None:
    """Copy an image archive from reader to writer, renaming its image repositories."""
    try:
        with tarfile.open(fileobj=reader, mode="r|") as source, tarfile.open(fileobj=writer, mode="w|") as target:
            for member in source:
                handle = source.extractfile(member) if member.isfile() else None
                data = handle.read() if handle is not None else b""

                if member.name == "repositories":
                    data = edit_repositories_file(data, edit_repositories)
                    member.size = len(data)
                elif member.name == "manifest.json":
                    data = edit_manifest_repositories(data, edit_repositories)
                    member.size = len(data)

                target.addfile(member, io.BytesIO(data) if data else None)
    except tarfile.TarError as exc:
        raise ArchiveError(str(exc)) from exc