import pytest

from kubeseed.bootstrap.cluster.join_artifacts import (
    extract_certificate_key,
    extract_worker_join_command,
    master_join_command,
    parse_node_names,
)
from kubeseed.errors import ParseError

KEY = "a" * 32 + "0" * 32


def test_certificate_key_is_first_hex_match():
    out = f"[upload-certs] Storing the certificates\n[upload-certs] Using certificate key:\n{KEY}\n{'b' * 64}\n"
    assert extract_certificate_key(out) == KEY


def test_certificate_key_missing_raises_parse_error():
    with pytest.raises(ParseError):
        extract_certificate_key("[upload-certs] nothing useful\nABCDEF" + "F" * 60)


def test_worker_join_command_keeps_tail():
    out = "kubeadm join lb.kubeseed.local:6443 --token t.x --discovery-token-ca-cert-hash sha256:abc \n"
    assert extract_worker_join_command(out) == (
        "/usr/local/bin/kubeadm join lb.kubeseed.local:6443 --token t.x --discovery-token-ca-cert-hash sha256:abc"
    )


@pytest.mark.parametrize("out", ["", "token created", "kubeadm join   "])
def test_worker_join_command_requires_marker_and_args(out):
    with pytest.raises(ParseError):
        extract_worker_join_command(out)


def test_master_join_command_appends_control_plane_suffix():
    worker = "/usr/local/bin/kubeadm join x:6443 --token t"
    assert master_join_command(worker, KEY) == f"{worker} --control-plane --certificate-key {KEY}"


def test_parse_node_names_skips_header():
    listing = (
        "NAME    STATUS   ROLES                  AGE   VERSION\r\n"
        "node1   Ready    control-plane,master   5m    v1.21.0\r\n"
        "node2   Ready    worker                 2m    v1.21.0\r\n"
        "\r\n"
    )
    assert parse_node_names(listing) == frozenset({"node1", "node2"})
    assert parse_node_names("") == frozenset()
