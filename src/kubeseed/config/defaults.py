# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/config/defaults.py

DEFAULT_KUBE_VERSION = "v1.21.0"
DEFAULT_CNI_VERSION = "v0.8.6"
DEFAULT_HELM_VERSION = "v3.2.1"
LEGACY_HELM_VERSION = "v2.16.9"
# platform release that still ships tiller-based charts
LEGACY_HELM_PLATFORM_VERSION = "v2.1.1"

DEFAULT_PRE_DIR = "kubeseed"
DEFAULT_CLUSTER_NAME = "cluster.local"
DEFAULT_IMAGE_REPOSITORY = "registry.k8s.io"
DEFAULT_POD_CIDR = "10.233.64.0/18"
DEFAULT_SERVICE_CIDR = "10.233.0.0/18"
DEFAULT_API_SERVER_PORT = 6443

SUPPORTED_ARCHITECTURES = ("amd64", "arm64")

# region hint
ZONE_ENV_VAR = "KUBESEED_ZONE"
LOG_DIR_ENV_VAR = "KUBESEED_LOG_DIR"
MIRROR_ZONE = "cn"

# paths on managed nodes
BIN_DIR = "/usr/local/bin"
KUBE_CONFIG_DIR = "/etc/kubernetes"
KUBE_CERT_DIR = "/etc/kubernetes/pki"
KUBE_MANIFEST_DIR = "/etc/kubernetes/manifests"
KUBE_SCRIPT_DIR = "/usr/local/bin/kube-scripts"
KUBELET_FLEXVOLUMES_PLUGINS_DIR = "/usr/libexec/kubernetes/kubelet-plugins/volume/exec"
CNI_BIN_DIR = "/opt/cni/bin"
CNI_CONF_DIR = "/etc/cni/net.d"
ADMIN_CONF = "/etc/kubernetes/admin.conf"
KUBEADM_CONFIG_PATH = "/etc/kubernetes/kubeadm-config.yaml"
APISERVER_MANIFEST = "/etc/kubernetes/manifests/kube-apiserver.yaml"
NODE_TMP_DIR = "/tmp/kubeseed"

# name of the operator-supplied bootstrap config inside workdir
CUSTOM_KUBEADM_CONFIG = "kubeadm-config.yaml"
# rewritten admin kubeconfig written to workdir
LOCAL_KUBECONFIG = "config"
