# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/cluster/commands.py

"""Shell snippets run on control-plane and worker nodes."""

from __future__ import annotations

import shlex

from kubeseed.config import defaults
from kubeseed.utils.ssh_runner import sudo_sh

KUBEADM = f"{defaults.BIN_DIR}/kubeadm"
KUBECTL = f"{defaults.BIN_DIR}/kubectl"

EXTERNAL_ETCD_CERTS = ("external-etcd-ca.crt", "external-etcd.crt", "external-etcd.key")

CLUSTER_EXISTS = "Cluster already exists."
CLUSTER_ABSENT = "Cluster will be created."


def probe_admin_conf() -> str:
    return sudo_sh(
        f"[ -f {defaults.ADMIN_CONF} ] && echo '{CLUSTER_EXISTS}' || echo '{CLUSTER_ABSENT}'"
    )


def read_apiserver_manifest() -> str:
    return sudo_sh(f"cat {defaults.APISERVER_MANIFEST}")


def write_kubeadm_config(config_b64: str) -> str:
    return sudo_sh(
        f"mkdir -p {defaults.KUBE_CONFIG_DIR} && echo {config_b64} | base64 -d > {defaults.KUBEADM_CONFIG_PATH}"
    )


def kubeadm_init() -> str:
    return sudo_sh(f"{KUBEADM} init --config={defaults.KUBEADM_CONFIG_PATH}")


def kubeadm_reset() -> str:
    return sudo_sh(f"{KUBEADM} reset -f")


def stage_admin_kubeconfig() -> str:
    return sudo_sh(" && ".join([
        "mkdir -p /root/.kube && mkdir -p $HOME/.kube",
        f"cp -f {defaults.ADMIN_CONF} /root/.kube/config",
        f"cp -f {defaults.ADMIN_CONF} $HOME/.kube/config",
        "chown $(id -u):$(id -g) $HOME/.kube/config",
    ]))


def remove_master_taint(node_name: str) -> str:
    return sudo_sh(f"{KUBECTL} taint nodes {node_name} node-role.kubernetes.io/master=:NoSchedule-")


def add_worker_label(node_name: str) -> str:
    return sudo_sh(f"{KUBECTL} label --overwrite node {node_name} node-role.kubernetes.io/worker=")


def upload_certs() -> str:
    return sudo_sh(f"{KUBEADM} init phase upload-certs --upload-certs")


def scrub_etcd_secret(cert: str) -> str:
    patch = '{"data": {"%s": ""}}' % cert
    return sudo_sh(f"{KUBECTL} patch -n kube-system secret kubeadm-certs -p {shlex.quote(patch)}")


def token_create_join_command() -> str:
    return sudo_sh(f"{KUBEADM} token create --print-join-command")


def list_nodes() -> str:
    return sudo_sh(f"{KUBECTL} get nodes -o wide")


def admin_kubeconfig_b64() -> str:
    return sudo_sh(f"cat {defaults.ADMIN_CONF} | base64 --wrap=0")


def join(join_command: str) -> str:
    return sudo_sh(join_command)


def create_kube_dirs() -> str:
    return sudo_sh("mkdir -p /root/.kube && mkdir -p $HOME/.kube")


def write_root_kubeconfig(kubeconfig_b64: str) -> str:
    return sudo_sh(f"echo {kubeconfig_b64} | base64 -d > /root/.kube/config")


def write_user_kubeconfig(kubeconfig_b64: str) -> str:
    return sudo_sh(
        f"echo {kubeconfig_b64} | base64 -d > $HOME/.kube/config && chown $(id -u):$(id -g) -R $HOME/.kube"
    )


def rollout_status(kind: str, name: str, namespace: str = "kube-system", timeout: str = "300s") -> str:
    return sudo_sh(f"{KUBECTL} -n {namespace} rollout status {kind}/{name} --timeout={timeout}")
