import io
import tarfile

import pytest
import requests

from kubeseed.errors import DownloadError, FilesystemError
from kubeseed.files.binaries import new_artifact
from kubeseed.provision.downloader import HttpDownloader


class _Resp:
    def __init__(self, body=b"", exc=None):
        self.body = body
        self.exc = exc

    def raise_for_status(self):
        if self.exc:
            raise self.exc

    def iter_content(self, chunk_size=1):
        yield self.body

    def __enter__(self):
        return self

    def __exit__(self, *a):
        return False


class _Session:
    def __init__(self, resp):
        self.resp = resp
        self.urls = []

    def get(self, url, **kw):
        self.urls.append(url)
        return self.resp


def test_plain_binary(tmp_path):
    a = new_artifact("kubeadm", "v1.21.0", "amd64", tmp_path, None)
    HttpDownloader(session=_Session(_Resp(b"ELF"))).fetch(a)
    assert a.path.read_bytes() == b"ELF"
    assert not (tmp_path / "kubeadm.part").exists()


def test_tarball_member_is_extracted(tmp_path):
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        info = tarfile.TarInfo("linux-amd64/helm")
        info.size = 4
        tar.addfile(info, io.BytesIO(b"HELM"))
    a = new_artifact("helm", "v3.2.1", "amd64", tmp_path, None)

    HttpDownloader(session=_Session(_Resp(buf.getvalue()))).fetch(a)

    assert a.path.read_bytes() == b"HELM"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["helm"]


def test_http_error_is_download_error(tmp_path):
    a = new_artifact("kubelet", "v1.21.0", "amd64", tmp_path, None)
    session = _Session(_Resp(exc=requests.HTTPError("404")))
    with pytest.raises(DownloadError):
        HttpDownloader(session=session).fetch(a)
    assert list(tmp_path.iterdir()) == []


def test_move_into_place_failure_is_filesystem_error(tmp_path):
    a = new_artifact("kubectl", "v1.21.0", "amd64", tmp_path, None)
    # a non-empty directory squatting on the target path
    a.path.mkdir()
    (a.path / "keep").write_text("x")

    with pytest.raises(FilesystemError, match="Failed to move"):
        HttpDownloader(session=_Session(_Resp(b"ELF"))).fetch(a)
    assert not (tmp_path / "kubectl.part").exists()
