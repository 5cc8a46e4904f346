import subprocess

import pytest

from kinder.commands import CommandError
from kinder.cri import docker


class FakeRun:
    """Stands in for subprocess.run, answering with queued (returncode, stdout) pairs."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        code, out = self.results.pop(0) if self.results else (0, b"")
        stdout = out if kwargs.get("stdout") is subprocess.PIPE else None
        return subprocess.CompletedProcess(argv, code, stdout=stdout, stderr=None)


@pytest.fixture
def fake_run(monkeypatch):
    def install(*results):
        fake = FakeRun(*results)
        monkeypatch.setattr(subprocess, "run", fake)
        return fake

    return install


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr("time.sleep", recorded.append)
    return recorded


def test_inspect_container_returns_lines(fake_run):
    fake = fake_run((0, b"true\n"))
    assert docker.inspect_container("node-1", "{{.State.Running}}") == ["true"]
    assert fake.calls == [["docker", "inspect", "-f", "{{.State.Running}}", "node-1"]]


def test_pull_image_already_present(fake_run, sleeps):
    fake = fake_run((0, b""))
    assert docker.pull_image("busybox:latest", 3) is False
    assert fake.calls == [["docker", "inspect", "--type=image", "busybox:latest"]]
    assert sleeps == []


def test_pull_image_pulls_when_missing(fake_run, sleeps):
    fake = fake_run((1, b""), (0, b""))
    assert docker.pull_image("busybox:latest", 3) is True
    assert fake.calls[1] == ["docker", "pull", "busybox:latest"]
    assert len(fake.calls) == 2


def test_pull_image_retries_with_growing_delay(fake_run, sleeps):
    fake = fake_run((1, b""), (1, b""), (1, b""), (0, b""))
    assert docker.pull_image("busybox:latest", 2) is True
    assert len(fake.calls) == 4
    assert sleeps == [1, 2]


def test_pull_image_raises_after_all_retries(fake_run, sleeps):
    fake = fake_run(*[(1, b"")] * 5)
    with pytest.raises(CommandError):
        docker.pull_image("busybox:latest", 2)
    assert len(fake.calls) == 1 + 1 + 2
    assert all(call == ["docker", "pull", "busybox:latest"] for call in fake.calls[1:])


def test_run_builds_argv(fake_run):
    fake = fake_run((0, b""))
    result = docker.run("kindest/node", ["--detach", "--name", "n1"], ["/sbin/init"])
    assert result is None
    assert fake.calls == [["docker", "run", "--detach", "--name", "n1", "kindest/node", "/sbin/init"]]


def test_run_failure_reports_output(fake_run):
    fake_run((125, b"Unable to find image\npull access denied\n"))
    with pytest.raises(docker.DockerRunError) as info:
        docker.run("missing/image", [], [])
    assert info.value.output == ["Unable to find image", "pull access denied"]
    assert "failed to execute docker run: Unable to find image pull access denied" in str(info.value)


def test_send_signal(fake_run):
    fake = fake_run((0, b""))
    result = docker.send_signal("SIGUSR1", "node-1")
    assert result is None
    assert fake.calls == [["docker", "kill", "-s", "SIGUSR1", "node-1"]]


def test_send_signal_failure(fake_run):
    fake_run((1, b""))
    with pytest.raises(CommandError):
        docker.send_signal("SIGUSR1", "node-1")