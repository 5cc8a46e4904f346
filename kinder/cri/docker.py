"""Thin helpers around the docker CLI on the host."""

from __future__ import annotations

import time
from collections.abc import Iterable

from kinder.commands import CommandError, HostCmd


class DockerRunError(RuntimeError):
    """``docker run`` failed; ``output`` holds the lines it printed."""

    def __init__(self, output: Iterable[str], cause: CommandError):
        self.output = list(output)
        self.cause = cause
        super().__init__(f"failed to execute docker run: {' '.join(self.output)}: {cause}")


def inspect_container(container_name_or_id: str, format: str) -> list[str]:
    """Return the low-level information docker reports for a container."""
    return HostCmd("docker", "inspect", "-f", format, container_name_or_id).run_and_capture()


def pull_image(image: str, retries: int) -> bool:
    """Pull image unless it is already present locally.

    Returns False when the image was already there and True when a pull was
    needed and succeeded. Failed pulls are retried up to ``retries`` times,
    waiting one more second before each attempt; if every attempt fails the
    last CommandError is raised.
    """
    try:
        HostCmd("docker", "inspect", "--type=image", image).run()
        return False
    except CommandError:
        pass

    try:
        HostCmd("docker", "pull", image).run()
        return True
    except CommandError as exc:
        error = exc

    for attempt in range(retries):
        time.sleep(attempt + 1)
        try:
            HostCmd("docker", "pull", image).run()
            return True
        except CommandError as exc:
            error = exc
    raise error


def run(image: str, run_args: Iterable[str], container_args: Iterable[str]) -> None:
    """Create a container with ``docker run``."""
    argv = ["run", *run_args, image, *container_args]
    try:
        HostCmd("docker", *argv).run_and_capture()
    except CommandError as exc:
        raise DockerRunError(exc.output, exc) from exc


def send_signal(signal: str, container_name_or_id: str) -> None:
    """Send the named signal to a container."""
    HostCmd("docker", "kill", "-s", signal, container_name_or_id).run()