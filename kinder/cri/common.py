"""Docker run arguments and helpers shared by every container runtime."""

from __future__ import annotations

import socket
from collections.abc import Callable, Iterable
from datetime import datetime

from kinder.commands import CommandError, HostCmd

_DEFAULT_NETWORK = "bridge"
_HTTP_PROXY = "HTTP_PROXY"
_HTTPS_PROXY = "HTTPS_PROXY"
_NO_PROXY = "NO_PROXY"


def userns_remap() -> bool:
    """Return True if user namespace remapping is enabled in dockerd."""
    cmd = HostCmd("docker", "info", "--format", "'{{json .SecurityOptions}}'")
    try:
        lines = cmd.run_and_capture()
    except CommandError:
        return False
    return bool(lines) and "name=userns" in lines[0]


def get_proxy_envs() -> dict[str, str]:
    """Return the proxy variables to pass to node containers.

    Each of HTTP_PROXY, HTTPS_PROXY and NO_PROXY is read in upper case, then
    in lower case, and stored under both spellings. When any proxy is set, the
    subnets of the default docker network are prepended to NO_PROXY.
    """
    import os

    envs: dict[str, str] = {}
    for name in (_HTTP_PROXY, _HTTPS_PROXY, _NO_PROXY):
        value = os.environ.get(name, "") or os.environ.get(name.lower(), "")
        if value:
            envs[name] = value
            envs[name.lower()] = value

    if envs:
        no_proxy = envs.get(_NO_PROXY, "")
        if no_proxy:
            no_proxy += ","
        subnets = get_subnets(_DEFAULT_NETWORK)
        no_proxy_list = ",".join([*subnets, no_proxy])
        envs[_NO_PROXY] = no_proxy_list
        envs[_NO_PROXY.lower()] = no_proxy_list

    return envs


def get_subnets(network_name: str) -> list[str]:
    """Return the IPAM subnets of a docker network."""
    fmt = '{{range (index (index . "IPAM") "Config")}}{{index . "Subnet"}} {{end}}'
    cmd = HostCmd("docker", "network", "inspect", "-f", fmt, network_name)
    lines = cmd.run_and_capture()
    if not lines:
        raise CommandError(cmd.argv(), reason="failed to get subnets: no output")
    return lines[0].strip().split(" ")


def get_free_port() -> int:
    """Return a TCP port that is free on the host at the time of the call."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("", 0))
        return sock.getsockname()[1]


def run_args_for_external_etcd(args: Iterable[str]) -> list[str]:
    """Return the docker run arguments for an external etcd container."""
    return list(args)


def container_args_for_external_etcd(name: str, args: Iterable[str]) -> list[str]:
    """Append the entrypoint arguments of a single-node, insecure etcd."""
    return [
        *args,
        "etcd",
        "--name",
        f"{name}-etcd",
        "--advertise-client-urls",
        "http://127.0.0.1:2379",
        "--listen-client-urls",
        "http://0.0.0.0:2379",
    ]


def try_until(until: datetime, attempt: Callable[[], bool]) -> bool:
    """Call attempt repeatedly until it returns True or the deadline passes."""
    while until > datetime.now():
        if attempt():
            return True
    return False