# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/node/os_prep.py

from __future__ import annotations

import base64
import logging
from typing import List, Optional

from jinja2 import TemplateError

from kubeseed.bootstrap.template_renderer import TemplateRenderer
from kubeseed.config import defaults
from kubeseed.config.models import ClusterConfig, HostNode
from kubeseed.errors import BootstrapError, ConfigGenerationError, KubeseedError
from kubeseed.execution.executor import RemoteCommandExecutor
from kubeseed.utils.ssh_runner import sudo_sh

log = logging.getLogger("kubeseed")

INIT_OS_TEMPLATE = "init-os.sh.j2"

KUBE_DIRS = (
    defaults.BIN_DIR,
    defaults.KUBE_CONFIG_DIR,
    defaults.KUBE_CERT_DIR,
    defaults.KUBE_MANIFEST_DIR,
    defaults.KUBE_SCRIPT_DIR,
    defaults.KUBELET_FLEXVOLUMES_PLUGINS_DIR,
)


class OsPreparer:
    """
    Ports the OS preparation of the old shell installer:
      - kube / etcd system users
      - Kubernetes, CNI and calico directories owned by kube
      - a clean /tmp/kubeseed
      - hostname and /etc/hosts
      - initOS.sh (swap, kernel modules, sysctl, firewall)
    """

    def __init__(self, cfg: ClusterConfig, renderer: Optional[TemplateRenderer] = None):
        self.cfg = cfg
        self.renderer = renderer or TemplateRenderer()

    # ---------- steps ----------

    def add_users(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        ex.execute(sudo_sh("useradd -M -c 'Kubernetes user' -s /sbin/nologin -r kube || :"), retries=1)
        if node.is_etcd:
            ex.execute(sudo_sh("useradd -M -c 'Etcd user' -s /sbin/nologin -r etcd || :"), retries=1)

    def create_directories(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        for d in KUBE_DIRS:
            # flexvolume plugins live deep below /usr/libexec/kubernetes; own the whole tree
            owned = "/usr/libexec/kubernetes" if d == defaults.KUBELET_FLEXVOLUMES_PLUGINS_DIR else d
            ex.execute(sudo_sh(f"mkdir -p {d} && chown kube -R {owned}"), retries=1)

        ex.execute(sudo_sh(f"mkdir -p {defaults.CNI_CONF_DIR} && chown kube -R /etc/cni"), retries=1)
        ex.execute(sudo_sh(f"mkdir -p {defaults.CNI_BIN_DIR} && chown kube -R /opt/cni"), retries=1)
        ex.execute(sudo_sh("mkdir -p /var/lib/calico && chown kube -R /var/lib/calico"), retries=1)
        if node.is_etcd:
            ex.execute(sudo_sh("mkdir -p /var/lib/etcd && chown etcd -R /var/lib/etcd"), retries=1)

    def reset_tmp_dir(self, ex: RemoteCommandExecutor) -> None:
        tmp = defaults.NODE_TMP_DIR
        ex.execute(sudo_sh(f"if [ -d {tmp} ]; then rm -rf {tmp} ;fi") + f" && mkdir -p {tmp}", retries=1)

    def set_hostname(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        ex.execute(
            sudo_sh(
                f"hostnamectl set-hostname {node.name} "
                f"&& sed -i '/^127.0.1.1/s/.*/127.0.1.1      {node.name}/g' /etc/hosts"
            ),
            retries=1,
        )

    def render_script(self, node: HostNode) -> str:
        cp = self.cfg.control_plane_endpoint
        hosts: List[dict] = [
            {"name": n.name, "internal_address": n.internal_address} for n in self.cfg.nodes()
        ]
        return self.renderer.render(INIT_OS_TEMPLATE, {
            "node_name": node.name,
            "cluster_name": self.cfg.kubernetes.cluster_name,
            "hosts": hosts,
            "lb_domain": cp.domain,
            "lb_address": cp.address or self.cfg.first_master().internal_address,
        })

    def run_init_script(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        tmp = defaults.NODE_TMP_DIR
        try:
            script = self.render_script(node)
        except TemplateError as e:
            raise ConfigGenerationError(f"Failed to generate init os script: {e}") from e
        script_b64 = base64.b64encode(script.encode()).decode()
        ex.execute(f"echo {script_b64} | base64 -d > {tmp}/initOS.sh && chmod +x {tmp}/initOS.sh", retries=1)
        ex.execute(
            f"sudo cp {tmp}/initOS.sh {defaults.KUBE_SCRIPT_DIR} && sudo {defaults.KUBE_SCRIPT_DIR}/initOS.sh",
            retries=1,
        )

    # ---------- entry point ----------

    def prepare(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        log.info("[%s] Configuring operating system ...", node.name)
        try:
            self.add_users(node, ex)
            self.create_directories(node, ex)
        except KubeseedError as e:
            raise BootstrapError("Failed to create kube directories", e) from e
        try:
            self.reset_tmp_dir(ex)
        except KubeseedError as e:
            raise BootstrapError("Failed to create tmp dir", e) from e
        try:
            self.set_hostname(node, ex)
        except KubeseedError as e:
            raise BootstrapError("Failed to override hostname", e) from e
        try:
            self.run_init_script(node, ex)
        except KubeseedError as e:
            raise BootstrapError("Failed to configure operating system", e) from e
