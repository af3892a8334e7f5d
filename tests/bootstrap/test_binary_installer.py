import pytest

from kubeseed.bootstrap.node.binaries import KUBELET_DROPIN, KUBELET_UNIT, BinaryInstaller
from kubeseed.errors import BootstrapError
from kubeseed.files.binaries import resolve_artifacts

from fakes import FakeExecutor


def test_install_uploads_binaries_and_units(cluster_config, tmp_path):
    node = cluster_config.by_name()["node2"]
    artifacts = resolve_artifacts("v1.21.0", "amd64", tmp_path)
    ex = FakeExecutor(node)

    BinaryInstaller().install(node, ex, artifacts)

    remote = {u[2] for u in ex.uploads}
    for name in ("kubeadm", "kubelet", "kubectl", "helm"):
        assert f"/usr/local/bin/{name}" in remote
    assert "/tmp/kubeseed/cni-plugins-linux-amd64-v0.8.6.tgz" in remote
    assert KUBELET_UNIT in remote and KUBELET_DROPIN in remote

    dropin = next(u[1] for u in ex.uploads if u[2] == KUBELET_DROPIN)
    assert "--node-ip=10.0.0.2" in dropin
    assert ex.matching("-C /opt/cni/bin")
    assert ex.matching("systemctl enable kubelet")


def test_install_requires_matching_architecture(cluster_config, tmp_path):
    node = cluster_config.by_name()["node1"]
    artifacts = resolve_artifacts("v1.21.0", "arm64", tmp_path)
    with pytest.raises(BootstrapError):
        BinaryInstaller().install(node, FakeExecutor(node), artifacts)
