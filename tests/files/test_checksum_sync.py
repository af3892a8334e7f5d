import hashlib
import io
import tarfile

import pytest
import requests
import yaml

from kubeseed.errors import DownloadError
from kubeseed.files.checksum_sync import ChecksumFetcher, write_table
from kubeseed.files.checksums import ChecksumTable

HELM_BIN = b"helm-binary"


def _helm_tarball(arch="amd64"):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        info = tarfile.TarInfo(f"linux-{arch}/helm")
        info.size = len(HELM_BIN)
        tar.addfile(info, io.BytesIO(HELM_BIN))
    return buf.getvalue()


class _Resp:
    def __init__(self, body: bytes, status=200):
        self.content = body
        self.text = body.decode(errors="replace")
        self.status_code = status

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")

    def iter_content(self, chunk_size=1):
        yield self.content

    def __enter__(self):
        return self

    def __exit__(self, *a):
        return False


class _Session:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def get(self, url, **kw):
        self.calls.append(url)
        if url not in self.routes:
            return _Resp(b"not found", status=404)
        return _Resp(self.routes[url])


def _routes():
    tgz = _helm_tarball()
    routes = {}
    base = "https://storage.googleapis.com/kubernetes-release/release/v1.21.0/bin/linux/amd64"
    for name, digit in (("kubeadm", "a"), ("kubelet", "b"), ("kubectl", "d")):
        routes[f"{base}/{name}.sha256"] = (digit * 64).encode()
    cni = "https://github.com/containernetworking/plugins/releases/download/v0.8.6/cni-plugins-linux-amd64-v0.8.6.tgz"
    routes[f"{cni}.sha256"] = ("c" * 64 + "  cni-plugins-linux-amd64-v0.8.6.tgz\n").encode()
    helm = "https://get.helm.sh/helm-v3.2.1-linux-amd64.tar.gz"
    routes[helm] = tgz
    routes[f"{helm}.sha256sum"] = (hashlib.sha256(tgz).hexdigest() + "  helm-v3.2.1-linux-amd64.tar.gz").encode()
    return routes


def test_fetch_builds_table_from_sidecars():
    table = ChecksumFetcher(session=_Session(_routes())).fetch("v1.21.0", ["amd64"])
    assert table.get("kubeadm", "amd64", "v1.21.0") == "a" * 64
    assert table.get("kubectl", "amd64", "v1.21.0") == "d" * 64
    assert table.get("kubecni", "amd64", "v0.8.6") == "c" * 64
    # helm digest is of the extracted binary, not the tarball
    assert table.get("helm", "amd64", "v3.2.1") == hashlib.sha256(HELM_BIN).hexdigest()


def test_fetch_missing_sidecar_raises():
    with pytest.raises(DownloadError):
        ChecksumFetcher(session=_Session({})).fetch("v1.21.0", ["amd64"])


def test_write_table_merges_existing(tmp_path):
    target = tmp_path / "checksums.yaml"
    target.write_text("kubeadm:\n  arm64:\n    v1.20.0: " + "a" * 64 + "\n")
    table = ChecksumTable({"kubeadm": {"amd64": {"v1.21.0": "b" * 64}}})

    write_table(table, target)

    data = yaml.safe_load(target.read_text())
    assert data["kubeadm"]["arm64"]["v1.20.0"] == "a" * 64
    assert data["kubeadm"]["amd64"]["v1.21.0"] == "b" * 64
