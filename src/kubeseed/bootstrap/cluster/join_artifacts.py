# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/cluster/join_artifacts.py

"""
Parsing of kubeadm / kubectl output into the values other nodes need to
join the cluster. Pure functions, no remote calls.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import FrozenSet

from kubeseed.config import defaults
from kubeseed.errors import ParseError

CERTIFICATE_KEY_RE = re.compile(r"[0-9a-f]{64}")
JOIN_MARKER = "kubeadm join"
KUBEADM = f"{defaults.BIN_DIR}/kubeadm"


@dataclass(frozen=True)
class JoinArtifacts:
    certificate_key: str
    worker_command: str
    master_command: str
    cluster_info: str = ""
    known_node_names: FrozenSet[str] = field(default_factory=frozenset)
    kubeconfig_b64: str = ""


def extract_certificate_key(output: str) -> str:
    """First 64-char lowercase hex run in ``upload-certs`` output."""
    m = CERTIFICATE_KEY_RE.search(output or "")
    if not m:
        raise ParseError("Failed to get certificate key: no 64-character hex key in upload-certs output")
    return m.group(0)


def extract_worker_join_command(output: str) -> str:
    """
    Rebuilds the join command around the absolute kubeadm path, keeping
    whatever ``token create --print-join-command`` printed after the marker.
    """
    parts = (output or "").split(JOIN_MARKER, 1)
    if len(parts) < 2:
        raise ParseError("Failed to get join node cmd: 'kubeadm join' not found in output")
    tail = parts[1].strip()
    if not tail:
        raise ParseError("Failed to get join node cmd: empty join arguments")
    return f"{KUBEADM} join {tail}"


def master_join_command(worker_command: str, certificate_key: str) -> str:
    return f"{worker_command} --control-plane --certificate-key {certificate_key}"


def parse_node_names(listing: str) -> FrozenSet[str]:
    """First column of each data row of ``kubectl get nodes -o wide``."""
    names = set()
    for i, line in enumerate((listing or "").splitlines()):
        fields = line.split()
        if not fields:
            continue
        if i == 0 and fields[0] == "NAME":
            continue
        names.add(fields[0])
    return frozenset(names)

