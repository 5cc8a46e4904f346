import pytest
import yaml

from kinder.kubeadm.patch import build
from kinder.kubeadm.patches import (
    UnsupportedConfigVersionError,
    get_docker_patch,
    get_encryption_algorithm_patch,
    get_external_etcd_patch,
    get_remove_token_patch,
)

VERSIONS = ["v1beta3", "v1beta4"]


@pytest.mark.parametrize("version", VERSIONS)
def test_remove_token_patch(version):
    patch = get_remove_token_patch(version)
    assert patch.group == "kubeadm.k8s.io"
    assert patch.version == version
    assert patch.kind == "JoinConfiguration"
    assert yaml.safe_load(patch.patch) == [{"op": "remove", "path": "/discovery/bootstrapToken"}]


@pytest.mark.parametrize("version", VERSIONS)
def test_remove_token_patch_applies_to_join_configuration(version):
    join = (
        f"apiVersion: kubeadm.k8s.io/{version}\n"
        "kind: JoinConfiguration\n"
        "discovery:\n"
        "  bootstrapToken:\n"
        "    apiServerEndpoint: somewhere\n"
        "  timeout: 5m0s\n"
    )
    result = yaml.safe_load(build(join, [], [get_remove_token_patch(version)]))
    assert result["discovery"] == {"timeout": "5m0s"}


@pytest.mark.parametrize("version", VERSIONS)
def test_docker_patch(version):
    patches = [yaml.safe_load(p) for p in get_docker_patch(version, True)]
    assert [p["kind"] for p in patches] == ["InitConfiguration", "JoinConfiguration"]
    for p in patches:
        assert p["apiVersion"] == f"kubeadm.k8s.io/{version}"
        assert p["nodeRegistration"] == {"criSocket": "/var/run/dockershim.sock"}


def test_docker_patch_ignores_control_plane_flag():
    assert get_docker_patch("v1beta4", True) == get_docker_patch("v1beta4", False)


def test_encryption_algorithm_patch_v1beta4():
    patch = yaml.safe_load(get_encryption_algorithm_patch("v1beta4", "RSA-2048"))
    assert patch == {
        "apiVersion": "kubeadm.k8s.io/v1beta4",
        "kind": "ClusterConfiguration",
        "encryptionAlgorithm": "RSA-2048",
    }


def test_encryption_algorithm_not_supported_in_v1beta3():
    with pytest.raises(UnsupportedConfigVersionError, match="not supported in v1beta3"):
        get_encryption_algorithm_patch("v1beta3", "RSA-2048")


@pytest.mark.parametrize("version", VERSIONS)
def test_external_etcd_patch(version):
    patch = yaml.safe_load(get_external_etcd_patch(version, "10.0.0.1"))
    assert patch["apiVersion"] == f"kubeadm.k8s.io/{version}"
    assert patch["kind"] == "ClusterConfiguration"
    assert patch["etcd"]["external"]["endpoints"] == ["http://10.0.0.1:2379"]


@pytest.mark.parametrize(
    "call",
    [
        lambda: get_remove_token_patch("v1beta2"),
        lambda: get_docker_patch("v1beta2", False),
        lambda: get_encryption_algorithm_patch("v1beta2", "ECDSA-P256"),
        lambda: get_external_etcd_patch("v1beta2", "10.0.0.1"),
    ],
)
def test_unknown_version(call):
    with pytest.raises(UnsupportedConfigVersionError, match="unknown kubeadm config version: v1beta2"):
        call()