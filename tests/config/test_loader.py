from pathlib import Path
import textwrap

import pytest
from pydantic import ValidationError

from kubeseed.config.loader import load_config

CLUSTER = textwrap.dedent("""
    hosts:
      - name: node1
        address: 192.168.0.1
        internal_address: 10.0.0.1
        arch: amd64
      - name: node2
        address: 192.168.0.2
        arch: arm64
    role_groups:
      etcd: [node1]
      master: [node1]
      worker: [node2]
    kubernetes:
      version: v1.21.0
    workdir: work
""")


def test_load_config_minimal_ok(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("KUBESEED_SECRETS_FILE", raising=False)
    f = tmp_path / "cluster.yaml"
    f.write_text(CLUSTER)
    cfg = load_config(f)

    assert [n.name for n in cfg.masters()] == ["node1"]
    assert cfg.first_master().internal_address == "10.0.0.1"
    assert cfg.by_name()["node2"].internal_address == "192.168.0.2"
    assert cfg.architectures() == ["amd64", "arm64"]
    assert cfg.workdir == (tmp_path / "work").resolve()
    assert cfg.binaries_dir("arm64") == cfg.workdir / "kubeseed" / "v1.21.0" / "arm64"


def test_secrets_are_merged_by_host_name(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("KUBESEED_SECRETS_FILE", raising=False)
    monkeypatch.setenv("NODE2_PASSWORD", "s3cret")
    (tmp_path / "cluster.yaml").write_text(CLUSTER)
    (tmp_path / "secrets.yaml").write_text(textwrap.dedent("""
        hosts:
          - name: node2
            password: ${NODE2_PASSWORD}
    """))

    cfg = load_config(tmp_path / "cluster.yaml")
    assert cfg.by_name()["node2"].password == "s3cret"
    assert cfg.by_name()["node1"].password is None


def test_zone_falls_back_to_environment(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("KUBESEED_SECRETS_FILE", raising=False)
    monkeypatch.setenv("KUBESEED_ZONE", "cn")
    (tmp_path / "cluster.yaml").write_text(CLUSTER)
    assert load_config(tmp_path / "cluster.yaml").resolved_zone() == "cn"

    (tmp_path / "cluster.yaml").write_text(CLUSTER + "zone: us\n")
    assert load_config(tmp_path / "cluster.yaml").resolved_zone() == "us"


def test_unknown_role_member_is_rejected(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("KUBESEED_SECRETS_FILE", raising=False)
    (tmp_path / "cluster.yaml").write_text(CLUSTER.replace("worker: [node2]", "worker: [node3]"))
    with pytest.raises(ValidationError, match="unknown host 'node3'"):
        load_config(tmp_path / "cluster.yaml")
