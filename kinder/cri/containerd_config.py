"""Reading and setting the sandbox image in the containerd config file."""

from __future__ import annotations

import os
from collections.abc import MutableMapping

import tomlkit

DEFAULT_CONFIG_PATH = "/etc/containerd/config.toml"

_SANDBOX_IMAGE_FIELD_PATH = ("plugins", "io.containerd.grpc.v1.cri", "sandbox_image")


class SandboxImageNotFoundError(LookupError):
    """The containerd config file does not define the sandbox image."""


def _load(path) -> tomlkit.TOMLDocument:
    os.stat(path)
    with open(path, encoding="utf-8") as handle:
        return tomlkit.parse(handle.read())


def get_cri_sandbox_image(path) -> str:
    """Return the sandbox image defined in the containerd config file at path."""
    node = _load(path)
    for key in _SANDBOX_IMAGE_FIELD_PATH:
        if not isinstance(node, MutableMapping) or key not in node:
            raise SandboxImageNotFoundError(
                f"the field {list(_SANDBOX_IMAGE_FIELD_PATH)} doesn't exist in the config file {path}"
            )
        node = node[key]
    if not isinstance(node, str):
        raise SandboxImageNotFoundError(
            f"the field {list(_SANDBOX_IMAGE_FIELD_PATH)} in the config file {path} is not a string"
        )
    return str(node)


def set_cri_sandbox_image(path, sandbox_image: str) -> None:
    """Set the sandbox image in the containerd config file at path, creating tables as needed."""
    document = _load(path)
    node = document
    *parents, field = _SANDBOX_IMAGE_FIELD_PATH
    for key in parents:
        if key not in node:
            node[key] = tomlkit.table()
        node = node[key]
        if not isinstance(node, MutableMapping):
            raise SandboxImageNotFoundError(f"the field {key} in the config file {path} is not a table")
    node[field] = sandbox_image

    try:
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(tomlkit.dumps(document))
    except OSError as exc:
        raise OSError(f"failed to write to config file {path}, error: {exc}") from exc