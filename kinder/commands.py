"""Running commands on the host and inside node containers."""

from __future__ import annotations

import abc
import enum
import io
import logging
import subprocess
import sys
from typing import IO, Union

from kinder import colors

log = logging.getLogger(__name__)

StdinData = Union[bytes, str, IO]


class CommandError(Exception):
    """A command could not be started or exited with a non-zero status."""

    def __init__(self, argv, returncode=None, output=None, reason=None):
        self.argv = list(argv)
        self.returncode = returncode
        self.output = list(output or [])
        joined = " ".join(self.argv)
        if reason is not None:
            message = f"command {joined} failed: {reason}"
        else:
            message = f"command {joined} failed: exit status {returncode}"
        super().__init__(message)


class _Output(enum.Enum):
    DISCARD = enum.auto()
    ECHO = enum.auto()
    CAPTURE = enum.auto()


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line.removesuffix("\r") for line in lines]


def _as_bytes(data: StdinData) -> bytes:
    if hasattr(data, "read"):
        data = data.read()
    if isinstance(data, str):
        return data.encode()
    return bytes(data)


def _fd_of(stream):
    try:
        return stream.fileno()
    except (AttributeError, OSError, io.UnsupportedOperation, ValueError):
        return None


def _spawn(argv: list[str], data: bytes | None, env: dict | None, mode: _Output) -> list[str]:
    """Run argv to completion; return captured lines (empty unless capturing)."""
    echo_out = echo_err = None
    if mode is _Output.DISCARD:
        out, err = subprocess.DEVNULL, subprocess.DEVNULL
    elif mode is _Output.CAPTURE:
        out, err = subprocess.PIPE, subprocess.STDOUT
    else:
        # the inner command's stdout goes to our stderr and vice versa
        echo_out, echo_err = sys.stderr, sys.stdout
        for stream in (sys.stdout, sys.stderr):
            stream.flush()
        out = _fd_of(echo_out)
        err = _fd_of(echo_err)
        out = subprocess.PIPE if out is None else out
        err = subprocess.PIPE if err is None else err

    stdin = subprocess.DEVNULL if data is None else None
    try:
        result = subprocess.run(argv, input=data, stdin=stdin, stdout=out, stderr=err, env=env, check=False)
    except OSError as exc:
        raise CommandError(argv, reason=str(exc)) from exc

    lines: list[str] = []
    if mode is _Output.CAPTURE:
        lines = _split_lines((result.stdout or b"").decode(errors="replace"))
    elif mode is _Output.ECHO:
        if out is subprocess.PIPE and result.stdout:
            echo_out.write(result.stdout.decode(errors="replace"))
        if err is subprocess.PIPE and result.stderr:
            echo_err.write(result.stderr.decode(errors="replace"))

    if result.returncode != 0:
        raise CommandError(argv, returncode=result.returncode, output=lines)
    return lines


class _Cmd(abc.ABC):
    def __init__(self):
        self._input: bytes | None = None

    @abc.abstractmethod
    def argv(self) -> list[str]:
        """Return the full argument vector that will be executed."""

    def _env(self) -> dict | None:
        return None

    def _execute(self, mode: _Output) -> list[str]:
        argv = self.argv()
        log.debug("Running: %s", " ".join(argv))
        return _spawn(argv, self._input, self._env(), mode)


class HostCmd(_Cmd):
    """A command run on the host; by default its output is discarded."""

    def __init__(self, command: str, *args: str):
        super().__init__()
        self.command = command
        self.args = list(args)
        self._environment: list[str] = []

    def run(self) -> None:
        """Run the command, discarding its output."""
        self._execute(_Output.DISCARD)

    def run_with_echo(self) -> None:
        """Run the command, echoing its output to the screen."""
        self._execute(_Output.ECHO)

    def run_and_capture(self) -> list[str]:
        """Run the command and return stdout and stderr as a list of lines.

        On failure the captured lines are available on ``CommandError.output``.
        """
        return self._execute(_Output.CAPTURE)

    def stdin(self, data: StdinData) -> "HostCmd":
        """Feed bytes, text or the content of a readable object to the command."""
        self._input = _as_bytes(data)
        return self

    def set_env(self, *args: str) -> "HostCmd":
        """Replace the command's environment with ``KEY=VALUE`` entries."""
        self._environment = list(args)
        return self

    def _env(self) -> dict | None:
        if not self._environment:
            return None
        env = {}
        for entry in self._environment:
            key, _, value = entry.partition("=")
            env[key] = value
        return env

    def argv(self) -> list[str]:
        return [self.command, *self.args]


class NodeCmd(_Cmd):
    """A command run inside a node container through ``docker exec``.

    Unless silenced, the command text is printed before execution.
    """

    def __init__(self, node: str, command: str, *args: str):
        super().__init__()
        self.node = node
        self.command = command
        self.args = list(args)
        self._silent = False
        self._dry_run = False

    def run(self) -> None:
        """Run the command, discarding its output."""
        self._execute(_Output.DISCARD)

    def run_with_echo(self) -> None:
        """Run the command, echoing its output to the screen."""
        self._execute(_Output.ECHO)

    def run_and_capture(self) -> list[str]:
        """Run the command and return stdout and stderr as a list of lines.

        On failure the captured lines are available on ``CommandError.output``.
        """
        return self._execute(_Output.CAPTURE)

    def stdin(self, data: StdinData) -> "NodeCmd":
        """Feed bytes, text or the content of a readable object to the command."""
        self._input = _as_bytes(data)
        return self

    def silent(self) -> "NodeCmd":
        """Do not print the command text before execution."""
        self._silent = True
        return self

    def dry_run(self) -> "NodeCmd":
        """Print the command text instead of running it."""
        self._dry_run = True
        return self

    def argv(self) -> list[str]:
        argv = ["docker", "exec"]
        if self._input is not None:
            # keep stdin open so data can be piped to the command
            argv.append("-i")
        return [*argv, self.node, self.command, *self.args]

    def _execute(self, mode: _Output) -> list[str]:
        if not self._silent:
            shown_prompt = colors.prompt(f"{self.node}:$ ")
            shown_command = colors.command(f"{self.command} {' '.join(self.args)}")
            print(f"\n{shown_prompt}{shown_command}")
        if self._dry_run:
            log.debug("Running: %s", " ".join(self.argv()))
            return []
        return super()._execute(mode)