"""Kubeadm config patches for the supported kubeadm config API versions."""

from __future__ import annotations

import logging

from kinder.kubeadm.patch import PatchJSON6902

log = logging.getLogger(__name__)

_REMOVE_TOKEN_PATCH = '\n- op: remove\n  path: "/discovery/bootstrapToken"'

_DOCKER_PATCH = """apiVersion: kubeadm.k8s.io/{version}
kind: {kind}
nodeRegistration:
  criSocket: /var/run/dockershim.sock"""

_ENCRYPTION_ALGORITHM_PATCH_V1BETA4 = """apiVersion: kubeadm.k8s.io/v1beta4
kind: ClusterConfiguration
encryptionAlgorithm: {algorithm}
"""

_EXTERNAL_ETCD_PATCH = """apiVersion: kubeadm.k8s.io/{version}
kind: ClusterConfiguration
etcd:
  external:
    endpoints:
    - http://{ip}:2379"""

_SUPPORTED_VERSIONS = ("v1beta3", "v1beta4")


class UnsupportedConfigVersionError(ValueError):
    """The kubeadm config version is unknown or does not support the requested setting."""


def _check_version(kubeadm_config_version: str) -> None:
    if kubeadm_config_version not in _SUPPORTED_VERSIONS:
        raise UnsupportedConfigVersionError(f"unknown kubeadm config version: {kubeadm_config_version}")


def get_remove_token_patch(kubeadm_config_version: str) -> PatchJSON6902:
    """Return the JSON 6902 patch that stops kubeadm join from using token discovery."""
    log.debug("Preparing removeTokenPatch for kubeadm config %s", kubeadm_config_version)
    _check_version(kubeadm_config_version)
    return PatchJSON6902(
        group="kubeadm.k8s.io",
        version=kubeadm_config_version,
        kind="JoinConfiguration",
        patch=_REMOVE_TOKEN_PATCH,
    )


def get_docker_patch(kubeadm_config_version: str, control_plane: bool) -> list[str]:
    """Return the init and join patches that make kubeadm use the docker CRI socket."""
    log.debug("Preparing dockerPatch for kubeadm config %s", kubeadm_config_version)
    _check_version(kubeadm_config_version)
    return [
        _DOCKER_PATCH.format(version=kubeadm_config_version, kind=kind)
        for kind in ("InitConfiguration", "JoinConfiguration")
    ]


def get_encryption_algorithm_patch(kubeadm_config_version: str, algorithm: str) -> str:
    """Return the patch that makes kubeadm use the given encryption algorithm."""
    log.debug("Preparing encryptionAlgorithm patch for kubeadm config %s", kubeadm_config_version)
    if kubeadm_config_version == "v1beta3":
        raise UnsupportedConfigVersionError("ClusterConfiguration.encryptionAlgorithm is not supported in v1beta3")
    _check_version(kubeadm_config_version)
    return _ENCRYPTION_ALGORITHM_PATCH_V1BETA4.format(algorithm=algorithm)


def get_external_etcd_patch(kubeadm_config_version: str, etcd_ip: str) -> str:
    """Return the patch that makes kubeadm use an external etcd at etcd_ip."""
    log.debug("Preparing externalEtcdPatch for kubeadm config %s", kubeadm_config_version)
    _check_version(kubeadm_config_version)
    return _EXTERNAL_ETCD_PATCH.format(version=kubeadm_config_version, ip=etcd_ip)