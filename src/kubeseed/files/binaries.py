# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/files/binaries.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from kubeseed.config import defaults
from kubeseed.errors import UnsupportedArchitectureError

KUBE_BINARIES = ("kubeadm", "kubelet", "kubectl")

CANONICAL_KUBE_HOST = "https://storage.googleapis.com/kubernetes-release"
CANONICAL_CNI_HOST = "https://github.com/containernetworking"
CANONICAL_HELM_HOST = "https://get.helm.sh"

MIRROR_KUBE_HOST = "https://kubernetes-release.pek3b.qingstor.com"
MIRROR_CNI_HOST = "https://containernetworking.pek3b.qingstor.com"
MIRROR_HELM_HOST = "https://kubernetes-helm.pek3b.qingstor.com"


@dataclass
class BinaryArtifact:
    """
    One downloadable dependency. Built per (name, arch); only url, path and
    get_cmd are filled in before download.
    """
    name: str
    arch: str
    version: str
    path: Optional[Path] = None
    url: str = ""
    # documented equivalent of the download, logged for operators
    get_cmd: str = ""
    # member to extract when the upstream ships a tarball
    archive_member: Optional[str] = None
    # False only for artifacts the checksum table never covers
    verify: bool = True

    @property
    def file_name(self) -> str:
        return self.path.name if self.path else self.name


def use_mirror(zone: Optional[str]) -> bool:
    return zone == defaults.MIRROR_ZONE


def check_architecture(arch: str) -> None:
    if arch not in defaults.SUPPORTED_ARCHITECTURES:
        raise UnsupportedArchitectureError(f"Unsupported architecture: {arch}")


def artifact_url(name: str, version: str, arch: str, zone: Optional[str]) -> Tuple[str, Optional[str]]:
    """
    Pure URL selection: returns (url, archive_member). The mirror is used
    only for the mirror zone; any other value means the canonical hosts.
    """
    mirror = use_mirror(zone)
    if name in KUBE_BINARIES:
        host = MIRROR_KUBE_HOST if mirror else CANONICAL_KUBE_HOST
        return f"{host}/release/{version}/bin/linux/{arch}/{name}", None
    if name == "kubecni":
        host = MIRROR_CNI_HOST if mirror else CANONICAL_CNI_HOST
        return f"{host}/plugins/releases/download/{version}/cni-plugins-linux-{arch}-{version}.tgz", None
    if name == "helm":
        if mirror:
            return f"{MIRROR_HELM_HOST}/linux-{arch}/{version}/helm", None
        return f"{CANONICAL_HELM_HOST}/helm-{version}-linux-{arch}.tar.gz", f"linux-{arch}/helm"
    if name == "helm2":
        # legacy helm is only published on the mirror
        return f"{MIRROR_HELM_HOST}/linux-{arch}/{version}/helm", None
    raise ValueError(f"unknown binary {name!r}")


def _target_path(name: str, version: str, arch: str, target_dir: Path) -> Path:
    if name == "kubecni":
        return target_dir / f"cni-plugins-linux-{arch}-{version}.tgz"
    return target_dir / name


def _get_cmd(artifact: BinaryArtifact) -> str:
    if artifact.archive_member:
        tarball = artifact.url.rsplit("/", 1)[-1]
        d = artifact.path.parent
        return (
            f"curl -L -o {d}/{tarball} {artifact.url} && cd {d} && tar -zxf {tarball} "
            f"&& mv {artifact.archive_member} . && rm -rf *linux-{artifact.arch}*"
        )
    return f"curl -L -o {artifact.path} {artifact.url}"


def new_artifact(name: str, version: str, arch: str, target_dir: Path, zone: Optional[str], *, verify: bool = True) -> BinaryArtifact:
    artifact = BinaryArtifact(name=name, arch=arch, version=version, verify=verify)
    artifact.path = _target_path(name, version, arch, target_dir)
    artifact.url, artifact.archive_member = artifact_url(name, version, arch, zone)
    artifact.get_cmd = _get_cmd(artifact)
    return artifact


def resolve_artifacts(
    kube_version: str,
    arch: str,
    target_dir: Path,
    zone: Optional[str] = None,
    *,
    cni_version: str = defaults.DEFAULT_CNI_VERSION,
    helm_version: str = defaults.DEFAULT_HELM_VERSION,
    platform_version: Optional[str] = None,
) -> List[BinaryArtifact]:
    """
    The fixed artifact set for one architecture: kubeadm, kubelet, kubectl,
    helm and the CNI plugin bundle, plus helm2 for the legacy platform release.
    """
    check_architecture(arch)
    target_dir = Path(target_dir)

    artifacts = [new_artifact(name, kube_version, arch, target_dir, zone) for name in KUBE_BINARIES]
    artifacts.append(new_artifact("helm", helm_version, arch, target_dir, zone))
    artifacts.append(new_artifact("kubecni", cni_version, arch, target_dir, zone))

    if platform_version == defaults.LEGACY_HELM_PLATFORM_VERSION:
        artifacts.append(
            new_artifact("helm2", defaults.LEGACY_HELM_VERSION, arch, target_dir, zone, verify=False)
        )
    return artifacts
