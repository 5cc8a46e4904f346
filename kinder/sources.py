"""Artifact sources: classifying them, resolving version labels and downloading over HTTP."""

from __future__ import annotations

import enum
import logging
import os
import random
import shutil
import time
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import IO, Union

from kinder.k8sversion import Version, VersionError, parse_semantic

log = logging.getLogger(__name__)

CI_BUILD_REPOSITORY = "https://storage.googleapis.com/k8s-release-dev/ci"
RELEASE_BUILD_REPOSITORY = "https://dl.k8s.io/release"

# characters that a URL path segment keeps unescaped
_PATH_SEGMENT_SAFE = "$&+:=@"


class SourceError(Exception):
    """An artifact source could not be resolved or read."""


class SourceType(enum.IntEnum):
    """Where the artifacts of a source are hosted."""

    RELEASE_LABEL_OR_VERSION = 1
    CI_LABEL_OR_VERSION = 2
    REMOTE_REPOSITORY = 3
    LOCAL_REPOSITORY = 4


@dataclass(frozen=True)
class _Backoff:
    steps: int = 20
    duration: float = 2.0
    factor: float = 1.2
    jitter: float = 0.1


_HTTP_GET_BACKOFF = _Backoff()


def get_source_type(src: str) -> SourceType:
    """Classify a source string."""
    if src.startswith("file://"):
        return SourceType.LOCAL_REPOSITORY
    if src.startswith("release/"):
        return SourceType.RELEASE_LABEL_OR_VERSION
    if src.startswith("ci/"):
        return SourceType.CI_LABEL_OR_VERSION
    if src.startswith(("http://", "https://")):
        return SourceType.REMOTE_REPOSITORY
    try:
        version = parse_semantic(src)
    except VersionError:
        return SourceType.LOCAL_REPOSITORY
    if version.build_metadata:
        return SourceType.CI_LABEL_OR_VERSION
    return SourceType.RELEASE_LABEL_OR_VERSION


def read_version(data: Union[bytes, str, IO]) -> Version:
    """Parse the version held in a label or version file's content."""
    if hasattr(data, "read"):
        try:
            data = data.read()
        except OSError as exc:
            raise SourceError(f"error reading version: {exc}") from exc
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")
    value = urllib.parse.quote(data.strip(), safe=_PATH_SEGMENT_SAFE)
    try:
        return parse_semantic(value)
    except VersionError as exc:
        raise SourceError(f"invalid version: {exc}") from exc


def http_get(uri: str) -> tuple[int, IO[bytes]]:
    """GET uri, retrying with exponential backoff until it answers 200 OK.

    Returns the content length (-1 when unknown) and the response body,
    which the caller must close.
    """
    backoff = _HTTP_GET_BACKOFF
    delay = backoff.duration
    last_error = SourceError(f"HTTP GET {uri} failed")
    for step in range(backoff.steps):
        try:
            response = urllib.request.urlopen(uri)
        except urllib.error.HTTPError as exc:
            status = f"{exc.code} {exc.reason}"
            exc.close()
            log.warning("HTTP GET %s failed: %s. Retry in few seconds", uri, status)
            last_error = SourceError(f"HTTP GET {uri} failed: {status}")
        except (urllib.error.URLError, OSError, ValueError) as exc:
            log.warning("HTTP GET %s failed. Retry in few seconds", uri)
            last_error = SourceError(f"HTTP GET {uri} failed: {exc}")
        else:
            if response.status == 200:
                header = response.headers.get("Content-Length")
                try:
                    length = int(header) if header is not None else -1
                except ValueError:
                    length = -1
                return length, response
            status = f"{response.status} {response.reason}"
            response.close()
            log.warning("HTTP GET %s failed: %s. Retry in few seconds", uri, status)
            last_error = SourceError(f"HTTP GET {uri} failed: {status}")

        if step + 1 < backoff.steps:
            time.sleep(delay + random.random() * backoff.jitter * delay)
            delay *= backoff.factor
    raise last_error


def copy_from_uri(src: str, dst) -> None:
    """Download src into dst, unless dst already has the remote content's size."""
    try:
        size, body = http_get(src)
    except SourceError as exc:
        raise SourceError(f"error getting reader for {src}: {exc}") from exc

    with body:
        try:
            if os.stat(dst).st_size == size:
                return
        except OSError:
            pass

        try:
            out = open(dst, "wb")
        except OSError as exc:
            raise SourceError(f"error creating {dst}: {exc}") from exc
        with out:
            try:
                shutil.copyfileobj(body, out)
            except OSError as exc:
                raise SourceError(f"error copying {src} to {dst}: {exc}") from exc


def resolve_repository_label(repository: str, label: str) -> Version:
    """Resolve a label such as ``stable`` to the version published in the repository."""
    uri = f"{repository}/{label}"
    if not uri.endswith(".txt"):
        uri += ".txt"
    log.debug("Resolving label %s", uri)

    try:
        _, body = http_get(uri)
    except SourceError as exc:
        raise SourceError(f"invalid version URI: {uri}: {exc}") from exc
    with body:
        try:
            version = read_version(body)
        except SourceError as exc:
            raise SourceError(f"error reading version from {uri}: {exc}") from exc

    log.debug("Label %s resolves to v%s", uri, version)
    return version


def resolve_label(src: str) -> str:
    """Resolve a ``release/`` or ``ci/`` label or version to a ``v``-prefixed version."""
    source_type = get_source_type(src)
    if source_type is SourceType.RELEASE_LABEL_OR_VERSION:
        src = src.removeprefix("release/")
        repository = RELEASE_BUILD_REPOSITORY
    elif source_type is SourceType.CI_LABEL_OR_VERSION:
        src = src.removeprefix("ci/")
        repository = CI_BUILD_REPOSITORY
    else:
        raise SourceError(f"source {src} did not resolve to a valid label")

    return f"v{resolve_repository_label(repository, src)}"