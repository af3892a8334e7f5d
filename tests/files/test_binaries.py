import pytest

from kubeseed.errors import UnsupportedArchitectureError
from kubeseed.files.binaries import artifact_url, resolve_artifacts


def test_canonical_kubeadm_url():
    url, member = artifact_url("kubeadm", "v1.21.0", "amd64", None)
    assert url == "https://storage.googleapis.com/kubernetes-release/release/v1.21.0/bin/linux/amd64/kubeadm"
    assert member is None


@pytest.mark.parametrize("zone", [None, "", "us", "CN"])
def test_only_cn_selects_mirror(zone):
    url, _ = artifact_url("kubelet", "v1.21.0", "arm64", zone)
    assert url.startswith("https://storage.googleapis.com/")


def test_mirror_urls():
    assert artifact_url("kubectl", "v1.21.0", "amd64", "cn")[0] == (
        "https://kubernetes-release.pek3b.qingstor.com/release/v1.21.0/bin/linux/amd64/kubectl"
    )
    assert artifact_url("kubecni", "v0.8.6", "arm64", "cn")[0] == (
        "https://containernetworking.pek3b.qingstor.com/plugins/releases/download/v0.8.6/cni-plugins-linux-arm64-v0.8.6.tgz"
    )
    assert artifact_url("helm", "v3.2.1", "amd64", "cn") == (
        "https://kubernetes-helm.pek3b.qingstor.com/linux-amd64/v3.2.1/helm", None
    )


def test_canonical_helm_is_a_tarball():
    url, member = artifact_url("helm", "v3.2.1", "arm64", None)
    assert url == "https://get.helm.sh/helm-v3.2.1-linux-arm64.tar.gz"
    assert member == "linux-arm64/helm"


def test_resolve_fixed_set(tmp_path):
    artifacts = resolve_artifacts("v1.21.0", "amd64", tmp_path)
    assert [a.name for a in artifacts] == ["kubeadm", "kubelet", "kubectl", "helm", "kubecni"]
    cni = artifacts[-1]
    assert cni.path == tmp_path / "cni-plugins-linux-amd64-v0.8.6.tgz"
    assert cni.get_cmd == f"curl -L -o {cni.path} {cni.url}"


def test_legacy_platform_adds_unverified_helm2(tmp_path):
    artifacts = resolve_artifacts("v1.21.0", "amd64", tmp_path, platform_version="v2.1.1")
    helm2 = artifacts[-1]
    assert helm2.name == "helm2"
    assert helm2.version == "v2.16.9"
    assert helm2.verify is False
    assert helm2.url == "https://kubernetes-helm.pek3b.qingstor.com/linux-amd64/v2.16.9/helm"


def test_unsupported_architecture(tmp_path):
    with pytest.raises(UnsupportedArchitectureError, match="Unsupported architecture: ppc64le"):
        resolve_artifacts("v1.21.0", "ppc64le", tmp_path)
