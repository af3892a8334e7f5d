# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/config/models.py

import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import defaults


class HostSpec(BaseModel):
    """One entry of the ``hosts`` list in the cluster file."""
    name: str
    address: str
    internal_address: Optional[str] = None
    port: int = 22
    user: str = "root"
    password: Optional[str] = None
    private_key_path: Optional[Path] = None
    arch: str = "amd64"

    @model_validator(mode="after")
    def _default_internal_address(self):
        if not self.internal_address:
            self.internal_address = self.address
        return self


class HostNode(BaseModel):
    """
    Identity and role flags of one cluster member, derived from
    ``hosts`` + ``role_groups``. Immutable for the whole run.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    internal_address: str
    port: int = 22
    user: str = "root"
    password: Optional[str] = None
    private_key_path: Optional[Path] = None
    arch: str = "amd64"

    is_master: bool = False
    is_worker: bool = False
    is_etcd: bool = False
    # ordinal inside the master group for masters, worker group otherwise
    index: int = 0

    @property
    def is_first_master(self) -> bool:
        return self.is_master and self.index == 0


class RoleGroups(BaseModel):
    etcd: List[str] = Field(default_factory=list)
    master: List[str] = Field(default_factory=list)
    worker: List[str] = Field(default_factory=list)


class KubernetesSpec(BaseModel):
    version: str = defaults.DEFAULT_KUBE_VERSION
    cluster_name: str = defaults.DEFAULT_CLUSTER_NAME
    image_repository: str = defaults.DEFAULT_IMAGE_REPOSITORY


class NetworkSpec(BaseModel):
    plugin: str = "calico"
    pod_cidr: str = defaults.DEFAULT_POD_CIDR
    service_cidr: str = defaults.DEFAULT_SERVICE_CIDR


class ControlPlaneEndpoint(BaseModel):
    domain: str = "lb.kubeseed.local"
    address: Optional[str] = None
    port: int = defaults.DEFAULT_API_SERVER_PORT


class ClusterConfig(BaseModel):
    hosts: List[HostSpec]
    role_groups: RoleGroups
    kubernetes: KubernetesSpec = KubernetesSpec()
    network: NetworkSpec = NetworkSpec()
    control_plane_endpoint: ControlPlaneEndpoint = ControlPlaneEndpoint()

    # downstream platform release; v2.1.1 additionally needs helm2
    platform_version: Optional[str] = None
    # region hint, "cn" selects the mirror hosts
    zone: Optional[str] = None
    workdir: Path = Field(default_factory=Path.cwd)
    download_prefix: str = defaults.DEFAULT_PRE_DIR
    cni_version: str = defaults.DEFAULT_CNI_VERSION
    helm_version: str = defaults.DEFAULT_HELM_VERSION

    parallel: bool = True
    retry_delay_seconds: float = 0.0

    @model_validator(mode="after")
    def _validate_role_groups(self):
        names = {h.name for h in self.hosts}
        if len(names) != len(self.hosts):
            raise ValueError("Host names must be unique")
        for group in ("etcd", "master", "worker"):
            for member in getattr(self.role_groups, group):
                if member not in names:
                    raise ValueError(f"role_groups.{group} references unknown host '{member}'")
        if not self.role_groups.master:
            raise ValueError("role_groups.master must contain at least one host")
        return self

    # Helper methods

    def nodes(self) -> List[HostNode]:
        """
        Returns every host with role flags and ordinal applied, in the order
        of the ``hosts`` list.
        """
        masters = self.role_groups.master
        workers = self.role_groups.worker
        etcd = set(self.role_groups.etcd)

        out: List[HostNode] = []
        for h in self.hosts:
            is_master = h.name in masters
            is_worker = h.name in workers
            if is_master:
                index = masters.index(h.name)
            elif is_worker:
                index = workers.index(h.name)
            else:
                index = 0
            out.append(
                HostNode(
                    **h.model_dump(),
                    is_master=is_master,
                    is_worker=is_worker,
                    is_etcd=h.name in etcd,
                    index=index,
                )
            )
        return out

    def by_name(self) -> Dict[str, HostNode]:
        return {n.name: n for n in self.nodes()}

    def masters(self) -> List[HostNode]:
        return sorted((n for n in self.nodes() if n.is_master), key=lambda n: n.index)

    def first_master(self) -> HostNode:
        return self.masters()[0]

    def k8s_nodes(self) -> List[HostNode]:
        return [n for n in self.nodes() if n.is_master or n.is_worker]

    def architectures(self) -> List[str]:
        seen: List[str] = []
        for n in self.nodes():
            if n.arch not in seen:
                seen.append(n.arch)
        return seen

    def resolved_zone(self) -> Optional[str]:
        return self.zone if self.zone is not None else os.environ.get(defaults.ZONE_ENV_VAR)

    def binaries_dir(self, arch: str) -> Path:
        return Path(self.workdir) / self.download_prefix / self.kubernetes.version / arch
