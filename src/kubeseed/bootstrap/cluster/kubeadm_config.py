# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/cluster/kubeadm_config.py

from __future__ import annotations

import base64
import ipaddress
import logging
from pathlib import Path
from typing import List

from jinja2 import TemplateError

from kubeseed.bootstrap.template_renderer import TemplateRenderer
from kubeseed.config import defaults
from kubeseed.config.models import ClusterConfig
from kubeseed.errors import ConfigGenerationError

log = logging.getLogger("kubeseed")

TEMPLATE = "kubeadm-config.yaml.j2"


def service_ip(service_cidr: str, offset: int) -> str:
    net = ipaddress.ip_network(service_cidr, strict=False)
    return str(net.network_address + offset)


def cert_sans(cfg: ClusterConfig) -> List[str]:
    cp = cfg.control_plane_endpoint
    sans = [
        "kubernetes",
        "kubernetes.default",
        "kubernetes.default.svc",
        f"kubernetes.default.svc.{cfg.kubernetes.cluster_name}",
        "localhost",
        "127.0.0.1",
        cp.domain,
        service_ip(cfg.network.service_cidr, 1),
    ]
    if cp.address:
        sans.append(cp.address)
    for n in cfg.masters():
        sans.extend([n.name, n.address, n.internal_address])
    return list(dict.fromkeys(sans))


def render_kubeadm_config(cfg: ClusterConfig, renderer: TemplateRenderer | None = None) -> str:
    first = cfg.first_master()
    cp = cfg.control_plane_endpoint
    try:
        context = {
            "version": cfg.kubernetes.version,
            "image_repository": cfg.kubernetes.image_repository,
            "cluster_name": cfg.kubernetes.cluster_name,
            "control_plane_endpoint": f"{cp.domain}:{cp.port}",
            "pod_cidr": cfg.network.pod_cidr,
            "service_cidr": cfg.network.service_cidr,
            "cluster_dns": service_ip(cfg.network.service_cidr, 3),
            "cert_sans": cert_sans(cfg),
            "advertise_address": first.internal_address,
            "bind_port": defaults.DEFAULT_API_SERVER_PORT,
            "node_name": first.name,
            "master_taint": not first.is_worker,
        }
        return (renderer or TemplateRenderer()).render(TEMPLATE, context)
    except (TemplateError, ValueError) as e:
        raise ConfigGenerationError(f"Failed to generate kubeadm config: {e}") from e


def bootstrap_config_b64(cfg: ClusterConfig) -> str:
    """
    The operator's ``<workdir>/kubeadm-config.yaml`` wins over the rendered
    template. Returned base64-encoded for the remote ``base64 -d`` pipe.
    """
    custom = Path(cfg.workdir) / defaults.CUSTOM_KUBEADM_CONFIG
    if custom.is_file():
        log.info("Using custom kubeadm config %s", custom)
        try:
            raw = custom.read_bytes()
        except OSError as e:
            raise ConfigGenerationError(f"Failed to read custom kubeadm config: {custom}: {e}") from e
    else:
        raw = render_kubeadm_config(cfg).encode()
    return base64.b64encode(raw).decode()
