"""Configuration of the external load balancer in front of the control plane."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ConfigData:
    """Values rendered into the load balancer configuration."""

    control_plane_port: int
    backend_servers: dict[str, str] = field(default_factory=dict)
    ipv6: bool = False


_HEADER = """# generated by kind
global
  log /dev/log local0
  log /dev/log local1 notice
  daemon

defaults
  log global
  mode tcp
  option dontlognull
  # TODO: tune these
  timeout connect 5000
  timeout client 50000
  timeout server 50000

frontend control-plane
"""

_BACKEND = """backend kube-apiservers
  option httpchk GET /healthz
  # TODO: we should be verifying (!)
  """


def config(data: ConfigData) -> str:
    """Return the haproxy configuration for the given data.

    Backend servers are listed in the order of their names.
    """
    port = data.control_plane_port
    ipv6_bind = f"  bind :::{port};" if data.ipv6 else "  "
    servers = "".join(
        f"\n  server {name} {address} check check-ssl verify none"
        for name, address in sorted(data.backend_servers.items())
    )
    return (
        f"{_HEADER}"
        f"  bind *:{port}\n"
        f"{ipv6_bind}\n"
        "  default_backend kube-apiservers\n"
        "\n"
        f"{_BACKEND}{servers}\n"
    )