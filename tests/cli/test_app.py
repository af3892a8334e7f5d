import logging

import pytest
from typer.testing import CliRunner

from kubeseed.bootstrap.cluster.state import BootstrapPhase, ClusterSnapshot
from kubeseed.cli import app as cli
from kubeseed.errors import ChecksumUnsupportedError

runner = CliRunner()

@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger("kubeseed")
    saved = (list(logger.handlers), logger.propagate, logger.level)
    yield
    for h in logger.handlers:
        if h not in saved[0]:
            h.close()
    logger.handlers[:] = saved[0]
    logger.propagate = saved[1]
    logger.setLevel(saved[2])

@pytest.fixture
def cluster_file(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("KUBESEED_LOG_DIR", raising=False)
    monkeypatch.delenv("KUBESEED_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text(
        "hosts:\n  - {name: node1, address: 10.0.0.1}\n"
        "role_groups:\n  master: [node1]\n  worker: [node1]\n"
    )
    return f

def test_status_prints_detection(cluster_file, monkeypatch):
    snap = ClusterSnapshot(phase=BootstrapPhase.EXISTS, exists=True, control_plane_version="v1.21.0")
    monkeypatch.setattr(cli.ClusterInstaller, "status", lambda self: snap)

    result = runner.invoke(cli.app, ["status", "-f", str(cluster_file)])

    assert result.exit_code == 0
    assert "exists:  True" in result.output
    assert "version: v1.21.0" in result.output

def test_installer_error_exits_1(cluster_file, monkeypatch):
    def _fail(self):
        raise ChecksumUnsupportedError("No SHA256 found for kubeadm v9.9.9 (amd64). v9.9.9 is not supported.")

    monkeypatch.setattr(cli.ClusterInstaller, "provision", _fail)

    result = runner.invoke(cli.app, ["download", "-f", str(cluster_file)])

    assert result.exit_code == 1
    assert "is not supported" in result.output
