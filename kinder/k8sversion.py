"""Parsing of semantic Kubernetes versions such as ``v1.30.0-alpha.1+abc``."""

from __future__ import annotations

import re
from dataclasses import dataclass

_VERSION_RE = re.compile(r"\s*v?([0-9]+(?:\.[0-9]+)*)(.*)")
_EXTRA_RE = re.compile(
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"\s*"
)


class VersionError(ValueError):
    """A string is not a valid semantic version."""


@dataclass(frozen=True)
class Version:
    """A semantic version; its string form has no leading ``v``."""

    major: int
    minor: int
    patch: int
    pre_release: str = ""
    build_metadata: str = ""

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre_release:
            text += f"-{self.pre_release}"
        if self.build_metadata:
            text += f"+{self.build_metadata}"
        return text


def parse_semantic(text: str) -> Version:
    """Parse a semantic version with exactly three numeric components.

    A leading ``v`` and surrounding whitespace are accepted; numeric
    components must not carry leading zeros.
    """
    match = _VERSION_RE.fullmatch(text)
    if match is None:
        raise VersionError(f"could not parse {text!r} as version")
    numbers, extra = match.groups()

    components = numbers.split(".")
    if len(components) != 3:
        raise VersionError(f"illegal version string {text!r}")
    for component in components:
        if len(component) > 1 and component.startswith("0"):
            raise VersionError(f"illegal zero-prefixed version component {component!r} in {text!r}")

    extra_match = _EXTRA_RE.fullmatch(extra)
    if extra_match is None:
        raise VersionError(f"illegal version string {text!r}")
    pre_release, build_metadata = extra_match.groups()

    major, minor, patch = (int(component) for component in components)
    return Version(
        major=major,
        minor=minor,
        patch=patch,
        pre_release=pre_release or "",
        build_metadata=build_metadata or "",
    )