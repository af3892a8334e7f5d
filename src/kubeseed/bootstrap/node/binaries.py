# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/node/binaries.py

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from jinja2 import TemplateError

from kubeseed.bootstrap.template_renderer import TemplateRenderer
from kubeseed.config import defaults
from kubeseed.config.models import HostNode
from kubeseed.errors import BootstrapError, ConfigGenerationError, KubeseedError
from kubeseed.execution.executor import FileTransferExecutor
from kubeseed.files.binaries import BinaryArtifact
from kubeseed.utils.ssh_runner import sudo_sh

log = logging.getLogger("kubeseed")

KUBELET_UNIT = "/etc/systemd/system/kubelet.service"
KUBELET_DROPIN = "/etc/systemd/system/kubelet.service.d/10-kubeadm.conf"

# artifacts copied verbatim into BIN_DIR
EXECUTABLES = ("kubeadm", "kubelet", "kubectl", "helm", "helm2")


class BinaryInstaller:
    """Pushes the provisioned binaries of a node's architecture and sets up kubelet."""

    def __init__(self, renderer: Optional[TemplateRenderer] = None):
        self.renderer = renderer or TemplateRenderer()

    def _upload(self, node: HostNode, ex: FileTransferExecutor, by_name: Dict[str, BinaryArtifact]) -> None:
        for name in EXECUTABLES:
            artifact = by_name.get(name)
            if artifact is None:
                continue
            ex.put_file(artifact.path, f"{defaults.BIN_DIR}/{name}", mode=0o755)

        cni = by_name.get("kubecni")
        if cni is not None:
            remote = f"{defaults.NODE_TMP_DIR}/{cni.path.name}"
            ex.put_file(cni.path, remote, mode=0o644)
            ex.execute(sudo_sh(f"mkdir -p {defaults.CNI_BIN_DIR} && tar -zxf {remote} -C {defaults.CNI_BIN_DIR}"), retries=1)

    def _kubelet_units(self, node: HostNode) -> Dict[str, str]:
        ctx = {
            "bin_dir": defaults.BIN_DIR,
            "node_ip": node.internal_address,
            "node_name": node.name,
            "flexvolume_dir": defaults.KUBELET_FLEXVOLUMES_PLUGINS_DIR,
        }
        try:
            return {
                KUBELET_UNIT: self.renderer.render("kubelet.service.j2", ctx),
                KUBELET_DROPIN: self.renderer.render("10-kubeadm.conf.j2", ctx),
            }
        except TemplateError as e:
            raise ConfigGenerationError(f"Failed to generate kubelet service: {e}") from e

    def install(self, node: HostNode, ex: FileTransferExecutor, artifacts: List[BinaryArtifact]) -> None:
        by_name = {a.name: a for a in artifacts if a.arch == node.arch}
        if not by_name:
            raise BootstrapError(f"Failed to sync kube binaries: nothing provisioned for {node.arch}")

        log.info("[%s] Installing kube binaries (%s)", node.name, node.arch)
        try:
            self._upload(node, ex, by_name)
        except (KubeseedError, OSError) as e:
            raise BootstrapError("Failed to sync kube binaries", e) from e

        try:
            ex.execute(sudo_sh(f"mkdir -p {KUBELET_DROPIN.rsplit('/', 1)[0]}"), retries=1)
            for path, content in self._kubelet_units(node).items():
                ex.put_text(content, path, mode=0o644)
            ex.execute(
                sudo_sh(
                    "systemctl daemon-reload && systemctl enable kubelet "
                    f"&& ln -snf {defaults.BIN_DIR}/kubelet /usr/bin/kubelet"
                ),
                retries=1,
            )
        except (KubeseedError, OSError) as e:
            raise BootstrapError("Failed to enable kubelet service", e) from e
