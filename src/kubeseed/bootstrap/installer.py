# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/installer.py

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from kubeseed.addons.dns import ClusterDnsProvisioner
from kubeseed.config.models import ClusterConfig, HostNode
from kubeseed.errors import FilesystemError
from kubeseed.execution.dispatcher import NodeFilter, NodeTaskDispatcher
from kubeseed.execution.executor import RemoteCommandExecutor, SshCommandExecutor
from kubeseed.files.binaries import BinaryArtifact, resolve_artifacts
from kubeseed.observers.dispatcher import EventBus
from kubeseed.observers.events import new_ctx, NodePrepared
from kubeseed.provision.downloader import Downloader
from kubeseed.provision.pipeline import ProvisioningPipeline, ProvisionReport
from kubeseed.utils.ssh import open_ssh

from .cluster.manager import BootstrapReport, ClusterBootstrapManager
from .cluster.state import ClusterSnapshot
from .node.binaries import BinaryInstaller
from .node.os_prep import OsPreparer

log = logging.getLogger("kubeseed")

Connector = Callable[[HostNode], RemoteCommandExecutor]


def ssh_connector(cfg: ClusterConfig) -> Connector:
    def _connect(node: HostNode) -> RemoteCommandExecutor:
        return SshCommandExecutor(node, open_ssh(node), retry_delay=cfg.retry_delay_seconds)
    return _connect


class ClusterInstaller:
    """
    One ``kubeseed create`` run:
      1) provision binaries for every architecture in the inventory
      2) prepare the OS of every host
      3) push binaries and the kubelet unit to every k8s node
      4) run the bootstrap protocol
    """

    def __init__(
        self,
        cfg: ClusterConfig,
        *,
        zone: Optional[str] = None,
        connect: Optional[Connector] = None,
        downloader: Optional[Downloader] = None,
        dns: Optional[ClusterDnsProvisioner] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.cfg = cfg
        self.zone = zone if zone is not None else cfg.resolved_zone()
        self.connect = connect or ssh_connector(cfg)
        self.downloader = downloader
        self.dns = dns
        self.bus = bus or EventBus([])
        self.run_ctx = run_ctx or new_ctx(cluster=cfg.kubernetes.cluster_name)

    def _dispatcher(self) -> NodeTaskDispatcher:
        return NodeTaskDispatcher(self.cfg.nodes(), self.connect, parallel=self.cfg.parallel)

    # ---------- binaries ----------

    def provision(self) -> ProvisionReport:
        pipeline = ProvisioningPipeline.from_config(
            self.cfg, downloader=self.downloader, bus=self.bus, run_ctx=self.run_ctx
        )
        return pipeline.provision(self.cfg.kubernetes.version, self.cfg.architectures(), self.zone)

    def cached_artifacts(self) -> Dict[str, List[BinaryArtifact]]:
        """Artifacts already on disk, for runs that skip the download step."""
        out: Dict[str, List[BinaryArtifact]] = {}
        for arch in self.cfg.architectures():
            artifacts = resolve_artifacts(
                self.cfg.kubernetes.version,
                arch,
                self.cfg.binaries_dir(arch),
                self.zone,
                cni_version=self.cfg.cni_version,
                helm_version=self.cfg.helm_version,
                platform_version=self.cfg.platform_version,
            )
            missing = [str(a.path) for a in artifacts if not a.path.exists()]
            if missing:
                raise FilesystemError(f"Binaries not downloaded yet: {', '.join(missing)}")
            out[arch] = artifacts
        return out

    # ---------- nodes ----------

    def prepare_nodes(self, dispatcher: NodeTaskDispatcher) -> None:
        prep = OsPreparer(self.cfg)

        def _task(node: HostNode, ex: RemoteCommandExecutor) -> None:
            prep.prepare(node, ex)
            self.bus.emit(NodePrepared(node=node.name, stage="os", **self.run_ctx))

        log.info("Configuring operating system ...")
        dispatcher.run_on_nodes(NodeFilter.ALL, _task)

    def install_binaries(self, dispatcher: NodeTaskDispatcher, artifacts: Dict[str, List[BinaryArtifact]]) -> None:
        installer = BinaryInstaller()

        def _task(node: HostNode, ex) -> None:
            installer.install(node, ex, artifacts.get(node.arch, []))
            self.bus.emit(NodePrepared(node=node.name, stage="binaries", **self.run_ctx))

        log.info("Syncing kube binaries ...")
        dispatcher.run_on_nodes(NodeFilter.K8S, _task)

    # ---------- entry points ----------

    def create(self, *, skip_download: bool = False, skip_os_prep: bool = False) -> BootstrapReport:
        artifacts = self.cached_artifacts() if skip_download else self.provision().artifacts

        dispatcher = self._dispatcher()
        try:
            if not skip_os_prep:
                self.prepare_nodes(dispatcher)
            self.install_binaries(dispatcher, artifacts)
            manager = ClusterBootstrapManager(
                self.cfg, dispatcher, dns=self.dns, bus=self.bus, run_ctx=self.run_ctx
            )
            return manager.run()
        finally:
            dispatcher.close()

    def status(self) -> ClusterSnapshot:
        dispatcher = self._dispatcher()
        try:
            return ClusterBootstrapManager(self.cfg, dispatcher, bus=self.bus, run_ctx=self.run_ctx).detect()
        finally:
            dispatcher.close()
