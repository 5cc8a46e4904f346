"""Extracting Kubernetes binaries and image tarballs from release, CI, remote or local repositories."""

from __future__ import annotations

import dataclasses
import glob
import logging
import os
import shutil
from collections.abc import Iterable
from dataclasses import dataclass

from kinder.k8sversion import Version, VersionError, parse_semantic
from kinder.sources import (
    CI_BUILD_REPOSITORY,
    RELEASE_BUILD_REPOSITORY,
    SourceError,
    SourceType,
    copy_from_uri,
    get_source_type,
    read_version,
    resolve_repository_label,
)

log = logging.getLogger(__name__)

KUBEADM_BINARY = "kubeadm"
KUBELET_BINARY = "kubelet"
KUBECTL_BINARY = "kubectl"

KUBERNETES_BINARIES = (KUBELET_BINARY, KUBECTL_BINARY, KUBEADM_BINARY)
KUBERNETES_IMAGES = (
    "kube-apiserver.tar",
    "kube-controller-manager.tar",
    "kube-scheduler.tar",
    "kube-proxy.tar",
)
ALL_IMAGES_PATTERN = ("*.tar",)

_VERSION_FILE = "version"
_BUILD_PLATFORM_PATH = "bin/linux/amd64"


class ExtractError(Exception):
    """Artifacts could not be extracted from a source."""


@dataclass
class FileNameMutator:
    """Computes the destination name of each extracted file."""

    name_override: str = ""
    name_prefix: str = ""
    prepend_version_folder: bool = False
    prepend_folder: str = ""

    def mutate(self, name: str) -> str:
        """Return the destination name for name; the version file is never renamed."""
        if name == _VERSION_FILE:
            return name
        if self.name_override:
            return self.name_override
        if self.name_prefix:
            name = f"{self.name_prefix}-{name}"
        if self.prepend_folder:
            name = os.path.join(self.prepend_folder, name)
        return name

    def ensure_folder(self, dst) -> None:
        """Create the folder that files are saved into below dst, if one is required."""
        if not self.prepend_folder:
            return
        folder = os.path.join(dst, self.prepend_folder)
        try:
            os.mkdir(folder, 0o777)
        except OSError as exc:
            raise ExtractError(f"failed to make {folder} dir: {exc}") from exc

    def read_version_file(self, src) -> None:
        """Read the version file in src when files are saved into a version folder."""
        if not self.prepend_version_folder:
            return
        version_file = os.path.join(src, _VERSION_FILE)
        if not os.path.exists(version_file):
            raise ExtractError(f"{version_file} does not exists. please provide a version file")
        try:
            with open(version_file, "rb") as handle:
                version = read_version(handle)
        except (OSError, SourceError) as exc:
            raise ExtractError(f"error reading version from {version_file}: {exc}") from exc
        self.set_prepend_version_folder(version)

    def set_prepend_version_folder(self, version: Version) -> None:
        """Name the version folder after version, when a version folder is requested."""
        if self.prepend_version_folder:
            self.prepend_folder = f"v{version}"


def expand_wildcards(src, files: Iterable[str]) -> list[str]:
    """Replace every name holding ``*`` with the names of the matching files in src."""
    expanded: list[str] = []
    for name in files:
        if "*" not in name:
            expanded.append(name)
            continue
        pattern = os.path.join(src, name)
        log.debug("searching source with wildcard %s", name)
        matches = sorted(glob.glob(pattern))
        log.debug("%d matches found", len(matches))
        expanded.extend(os.path.basename(match) for match in matches)
    return expanded


def save_version_file(add_version_file: bool, dst, version: Version, mutator: FileNameMutator) -> None:
    """Write ``v<version>`` into the version file in dst, if requested."""
    if not add_version_file:
        return
    path = os.path.join(dst, mutator.mutate(_VERSION_FILE))
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(f"v{version}")
    log.info("version file created")


def _make_executable(name: str, path: str) -> None:
    if name in KUBERNETES_BINARIES:
        try:
            os.chmod(path, 0o755)
        except OSError:
            pass


def _existing_dir(path, role: str) -> str:
    path = os.path.abspath(path)
    if not os.path.exists(path):
        raise ExtractError(f"{role} path {path} does not exists")
    return path


def extract_from_http(
    src: str, files: Iterable[str], dst, mutator: FileNameMutator, add_version_file: bool
) -> dict[str, str]:
    """Download files from the repository at src into dst; return their destination paths."""
    dst = _existing_dir(dst, "destination")
    mutator.ensure_folder(dst)

    names = list(files)
    if add_version_file:
        names.append(_VERSION_FILE)

    if src.startswith((RELEASE_BUILD_REPOSITORY, CI_BUILD_REPOSITORY)):
        src = f"{src}/{_BUILD_PLATFORM_PATH}"

    paths: dict[str, str] = {}
    for name in names:
        src_file = f"{src}/{name}"
        log.info("Downloading %s", src_file)
        dst_file = os.path.join(dst, mutator.mutate(name))
        try:
            copy_from_uri(src_file, dst_file)
        except SourceError as exc:
            raise ExtractError(f"failed to copy {src_file} to {dst_file}: {exc}") from exc
        _make_executable(name, dst_file)
        paths[name] = dst_file
    log.info("Downloaded files saved into %s", dst)
    return paths


def _copy(src: str, dst: str) -> None:
    if os.path.isdir(src):
        shutil.copytree(src, dst, dirs_exist_ok=True)
    else:
        os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
        shutil.copy(src, dst)


def extract_from_local_dir(
    src, files: Iterable[str], dst, mutator: FileNameMutator, add_version_file: bool
) -> dict[str, str]:
    """Copy files from a local folder, or a single local file, into dst; return their destination paths."""
    src = _existing_dir(src, "source")
    mutator.read_version_file(src)
    dst = _existing_dir(dst, "destination")
    mutator.ensure_folder(dst)

    if os.path.isfile(src):
        names = [os.path.basename(src)]
        parent = os.path.dirname(src)
        log.debug("%s is a file, moving up one level to %s", src, parent)
        src = parent
    else:
        names = expand_wildcards(src, files)

    if add_version_file:
        names.append(_VERSION_FILE)

    paths: dict[str, str] = {}
    for name in names:
        src_file = os.path.join(src, name)
        try:
            os.stat(src_file)
        except OSError as exc:
            raise ExtractError(f"cannot access {name} at {src_file}: {exc}") from exc
        log.info("Copying %s", src_file)
        dst_file = os.path.join(dst, mutator.mutate(name))
        try:
            _copy(src_file, dst_file)
        except OSError as exc:
            raise ExtractError(f"failed to copy alter bits: {exc}") from exc
        _make_executable(name, dst_file)
        paths[name] = dst_file
    log.info("Copied files saved into %s", dst)
    return paths


def _extract_from_build(
    prefix: str,
    repository: str,
    src: str,
    files: Iterable[str],
    dst,
    mutator: FileNameMutator,
    add_version_file: bool,
) -> dict[str, str]:
    src = src.removeprefix(prefix)
    try:
        version = parse_semantic(src)
    except VersionError:
        try:
            version = resolve_repository_label(repository, src)
        except SourceError as exc:
            raise ExtractError(str(exc)) from exc

    # the version file lets the destination be used as a source later on
    try:
        save_version_file(add_version_file, dst, version, mutator)
    except OSError as exc:
        raise ExtractError(f"error creating version file in {dst}: {exc}") from exc

    mutator.set_prepend_version_folder(version)
    return extract_from_http(f"{repository}/v{version}", files, dst, mutator, False)


def extract_from_ci_build(
    src: str, files: Iterable[str], dst, mutator: FileNameMutator, add_version_file: bool
) -> dict[str, str]:
    """Download files of a CI build, given by version or label, into dst."""
    return _extract_from_build("ci/", CI_BUILD_REPOSITORY, src, files, dst, mutator, add_version_file)


def extract_from_release_build(
    src: str, files: Iterable[str], dst, mutator: FileNameMutator, add_version_file: bool
) -> dict[str, str]:
    """Download files of a release build, given by version or label, into dst."""
    return _extract_from_build("release/", RELEASE_BUILD_REPOSITORY, src, files, dst, mutator, add_version_file)


_EXTRACTORS = {
    SourceType.RELEASE_LABEL_OR_VERSION: extract_from_release_build,
    SourceType.CI_LABEL_OR_VERSION: extract_from_ci_build,
    SourceType.REMOTE_REPOSITORY: extract_from_http,
    SourceType.LOCAL_REPOSITORY: extract_from_local_dir,
}


class Extractor:
    """Extracts Kubernetes artifacts from a source into a destination folder.

    By default all binaries and image tarballs are extracted, together with
    a version file so the destination can later be used as a source.
    """

    def __init__(
        self,
        src: str,
        dst,
        *,
        only_kubeadm: bool = False,
        only_kubelet: bool = False,
        only_kubernetes_binaries: bool = False,
        only_kubernetes_images: bool = False,
        name_prefix: str = "",
        name_override: str = "",
        version_file: bool | None = None,
        version_folder: bool = False,
    ):
        self.src = src
        self.dst = dst
        self.files: list[str] = [*KUBERNETES_BINARIES, *KUBERNETES_IMAGES]
        self.dst_mutator = FileNameMutator()
        self.add_version_file = True

        # reading a subset of files disables the version file
        for enabled, subset in (
            (only_kubeadm, [KUBEADM_BINARY]),
            (only_kubelet, [KUBELET_BINARY]),
            (only_kubernetes_binaries, list(KUBERNETES_BINARIES)),
            (only_kubernetes_images, list(KUBERNETES_IMAGES)),
        ):
            if enabled:
                self.files = subset
                self.add_version_file = False

        if name_prefix:
            self.dst_mutator.name_prefix = name_prefix
        if name_override:
            self.dst_mutator.name_override = name_override
        if version_file is not None:
            self.add_version_file = version_file
        self.dst_mutator.prepend_version_folder = version_folder

    def extract(self) -> dict[str, str]:
        """Extract the artifacts; return a mapping of file name to destination path."""
        source_type = get_source_type(self.src)
        extract = _EXTRACTORS.get(source_type)
        if extract is None:
            raise ExtractError(f"source {self.src} did not resolve to a valid source type")
        mutator = dataclasses.replace(self.dst_mutator)
        return extract(self.src, list(self.files), self.dst, mutator, self.add_version_file)