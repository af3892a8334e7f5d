# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/cluster/manager.py

from __future__ import annotations

import base64
import binascii
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

import yaml

from kubeseed.addons.dns import ClusterDnsProvisioner, CoreDnsProvisioner
from kubeseed.config import defaults
from kubeseed.config.models import ClusterConfig, HostNode
from kubeseed.errors import (
    BootstrapError,
    FilesystemError,
    KubeseedError,
    ParseError,
    RemoteCommandError,
)
from kubeseed.execution.dispatcher import NodeFilter, NodeTaskDispatcher
from kubeseed.execution.executor import RemoteCommandExecutor
from kubeseed.logging.log import redact
from kubeseed.observers.dispatcher import EventBus
from kubeseed.observers.events import (
    new_ctx,
    BootstrapStarted,
    PhaseChanged,
    ClusterDetected,
    InitAttempt,
    JoinArtifactsIssued,
    NodeJoinStarted,
    NodeJoinSkipped,
    NodeJoined,
    KubeconfigWritten,
    BootstrapFailed,
    BootstrapSummary,
)
from kubeseed.utils.retry import with_retry

from . import commands
from .join_artifacts import (
    extract_certificate_key,
    extract_worker_join_command,
    master_join_command,
    parse_node_names,
    JoinArtifacts,
)
from .kubeadm_config import bootstrap_config_b64
from .state import BootstrapPhase, ClusterSnapshot, ClusterStatusStore

log = logging.getLogger("kubeseed")

INIT_ATTEMPTS = 3
JOIN_ATTEMPTS = 3


@dataclass
class NodeJoinOutcome:
    name: str
    role: str                   # "master" | "worker"
    status: str                 # "JOINED" | "SKIPPED" | "FAILED"
    attempts: int = 0
    error: Optional[str] = None


@dataclass
class BootstrapReport:
    created: bool = False
    version: str = ""
    kubeconfig_path: Optional[str] = None
    outcomes: List[NodeJoinOutcome] = field(default_factory=list)

    def add(self, outcome: NodeJoinOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> str:
        return (
            f"created={self.created} JOINED={self.count('JOINED')} "
            f"SKIPPED={self.count('SKIPPED')} FAILED={self.count('FAILED')}"
        )


@contextmanager
def _operation(name: str) -> Iterator[None]:
    """Attach the operation name to any installer error raised inside."""
    try:
        yield
    except BootstrapError:
        raise
    except KubeseedError as e:
        raise BootstrapError(name, e) from e


def apiserver_version(manifest: str) -> str:
    """Image tag of the kube-apiserver container in its static pod manifest."""
    try:
        doc = yaml.safe_load(manifest) or {}
    except yaml.YAMLError as e:
        raise ParseError(f"kube-apiserver manifest is not valid YAML: {e}") from e
    spec = doc.get("spec") if isinstance(doc, dict) else None
    containers = spec.get("containers") if isinstance(spec, dict) else None
    if not isinstance(containers, list):
        return ""
    for c in containers:
        if not isinstance(c, dict):
            continue
        image = str(c.get("image") or "")
        if c.get("name") == "kube-apiserver" or "kube-apiserver" in image:
            # a ":" before the last "/" is a registry port, not a tag
            _, sep, tag = image.rpartition(":")
            return tag if sep and "/" not in tag else ""
    return ""


def rewrite_kubeconfig_server(kubeconfig: str, server: str) -> str:
    try:
        doc = yaml.safe_load(kubeconfig) or {}
    except yaml.YAMLError as e:
        raise ParseError(f"admin kubeconfig is not valid YAML: {e}") from e
    for entry in doc.get("clusters") or []:
        entry.setdefault("cluster", {})["server"] = server
    return yaml.safe_dump(doc, default_flow_style=False, sort_keys=False)


class ClusterBootstrapManager:
    """
    Brings the cluster from "whatever is there" to "every configured node
    joined", driven from the first control-plane node.

    Detection, initialization and join-artifact issuance each run as their
    own dispatch on the first master; the join dispatch over the remaining
    nodes only starts after the artifacts have been published, and every join
    task works from the same frozen snapshot.
    """

    def __init__(
        self,
        cfg: ClusterConfig,
        dispatcher: NodeTaskDispatcher,
        *,
        store: Optional[ClusterStatusStore] = None,
        dns: Optional[ClusterDnsProvisioner] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
        init_attempts: int = INIT_ATTEMPTS,
        join_attempts: int = JOIN_ATTEMPTS,
    ):
        self.cfg = cfg
        self.dispatcher = dispatcher
        self.store = store or ClusterStatusStore()
        self.dns = dns or CoreDnsProvisioner()
        self.bus = bus or EventBus([])
        self.run_ctx = run_ctx or new_ctx(cluster=cfg.kubernetes.cluster_name)
        self.init_attempts = init_attempts
        self.join_attempts = join_attempts
        self.first_master: HostNode = cfg.first_master()
        self.report = BootstrapReport()
        self._report_lock = threading.Lock()

    # ---------- helpers ----------

    def _transition(self, phase: BootstrapPhase) -> None:
        previous = self.store.transition(phase)
        log.debug("bootstrap phase %s -> %s", previous.value, phase.value)
        self.bus.emit(PhaseChanged(previous=previous.value, phase=phase.value, **self.run_ctx))

    def _record(self, outcome: NodeJoinOutcome) -> None:
        with self._report_lock:
            self.report.add(outcome)

    def _stage_kubeconfig(self, ex: RemoteCommandExecutor) -> None:
        with _operation("Failed to init kubernetes cluster"):
            ex.execute(commands.stage_admin_kubeconfig(), retries=2)

    def _remove_master_taint(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        if node.is_worker:
            with _operation("Failed to remove master taint"):
                ex.execute(commands.remove_master_taint(node.name), retries=5)

    def _add_worker_label(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        # labelling is the only step whose failure does not stop the run
        if node.is_worker:
            ex.execute(commands.add_worker_label(node.name), retries=5, tolerates_failure=True)

    def _kubeadm_with_reset(
        self, ex: RemoteCommandExecutor, command: str, attempts_allowed: int, label: str, on_attempt=None
    ) -> int:
        attempts = 0

        def _body() -> None:
            nonlocal attempts
            attempts += 1
            if on_attempt is not None:
                on_attempt(attempts)
            ex.execute(command)

        def _reset(attempt: int, exc: Exception) -> None:
            ex.execute(commands.kubeadm_reset(), tolerates_failure=True)

        with_retry(
            attempts_allowed,
            _body,
            _reset,
            retry_on=(RemoteCommandError,),
            delay=self.cfg.retry_delay_seconds,
            label=f"[{ex.node.name}] {label}",
        )
        return attempts

    # ---------- detection ----------

    def _detect(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        res = ex.execute(commands.probe_admin_conf(), tolerates_failure=True)
        if commands.CLUSTER_ABSENT in res.output:
            self._transition(BootstrapPhase.ABSENT)
            return
        if not res.ok:
            raise BootstrapError(
                f"Failed to find {defaults.ADMIN_CONF}",
                RemoteCommandError(node.name, res.command, res.exit_status, res.output, res.error or ""),
            )

        self.store.mark_exists()
        manifest = ex.execute(commands.read_apiserver_manifest(), tolerates_failure=True)
        if manifest.ok:
            try:
                self.store.set_version(apiserver_version(manifest.output))
            except ParseError as e:
                log.warning("[%s] could not read current version: %s", node.name, e)
        self._transition(BootstrapPhase.EXISTS)

    def detect(self) -> ClusterSnapshot:
        log.info("Get cluster status")
        self._transition(BootstrapPhase.DETECTING)
        self.dispatcher.run_on_nodes(NodeFilter.FIRST_MASTER, self._detect)
        snap = self.store.snapshot()
        self.bus.emit(ClusterDetected(exists=snap.exists, version=snap.control_plane_version, **self.run_ctx))
        return snap

    # ---------- initialization ----------

    def _initialize(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        with _operation("Failed to generate kubeadm config"):
            config_b64 = bootstrap_config_b64(self.cfg)
            ex.execute(commands.write_kubeadm_config(config_b64), retries=1)

        def _announce(attempt: int) -> None:
            log.info("[%s] kubeadm init (attempt %d/%d)", node.name, attempt, self.init_attempts)
            self.bus.emit(InitAttempt(node=node.name, attempt=attempt, **self.run_ctx))

        with _operation("Failed to init kubernetes cluster"):
            self._kubeadm_with_reset(
                ex, commands.kubeadm_init(), self.init_attempts, "kubeadm init", on_attempt=_announce
            )

        self._stage_kubeconfig(ex)
        self._remove_master_taint(node, ex)
        self._add_worker_label(node, ex)

        with _operation("Failed to create cluster dns"):
            self.dns.provision(ex)

        self.store.mark_exists()

    def initialize(self) -> None:
        if self.store.phase is not BootstrapPhase.ABSENT:
            log.info("Cluster already exists, skipping initialization")
            return
        log.info("Initializing kubernetes cluster")
        self._transition(BootstrapPhase.INITIALIZING)
        self.dispatcher.run_on_nodes(NodeFilter.FIRST_MASTER, self._initialize)
        self.report.created = True
        self._transition(BootstrapPhase.INITIALIZED)

    # ---------- join artifacts ----------

    def _issue(self, node: HostNode, ex: RemoteCommandExecutor) -> None:
        with _operation("Failed to upload kubeadm certs"):
            upload = ex.execute(commands.upload_certs(), retries=5)
        try:
            with _operation("Failed to get certificate key"):
                key = extract_certificate_key(upload.output)
        except BootstrapError as e:
            self._scrub_etcd_secret(ex, pending=e)
            raise
        self._scrub_etcd_secret(ex)

        with _operation("Failed to get join node cmd"):
            token = ex.execute(commands.token_create_join_command(), retries=5)
            worker_cmd = extract_worker_join_command(token.output)

        with _operation("Failed to get cluster info"):
            listing = ex.execute(commands.list_nodes(), retries=5).output

        with _operation("Failed to get cluster kubeconfig"):
            kubeconfig_b64 = ex.execute(
                commands.admin_kubeconfig_b64(), retries=1, log_output=False
            ).output.strip()

        artifacts = JoinArtifacts(
            certificate_key=key,
            worker_command=worker_cmd,
            master_command=master_join_command(worker_cmd, key),
            cluster_info=listing,
            known_node_names=parse_node_names(listing),
            kubeconfig_b64=kubeconfig_b64,
        )
        self.store.publish_join_artifacts(artifacts)

    def _scrub_etcd_secret(self, ex: RemoteCommandExecutor, pending: Optional[BootstrapError] = None) -> None:
        # runs after every upload-certs, also when the key could not be read
        try:
            with _operation("Failed to patch kubeadm secret"):
                for cert in commands.EXTERNAL_ETCD_CERTS:
                    ex.execute(commands.scrub_etcd_secret(cert), retries=5)
        except BootstrapError:
            if pending is not None:
                log.error("[%s] %s", ex.node.name, pending)
            raise

    def issue_join_artifacts(self) -> ClusterSnapshot:
        self._transition(BootstrapPhase.ISSUING_JOIN_ARTIFACTS)
        self.dispatcher.run_on_nodes(NodeFilter.FIRST_MASTER, self._issue)
        self.bus.emit(PhaseChanged(
            previous=BootstrapPhase.ISSUING_JOIN_ARTIFACTS.value,
            phase=BootstrapPhase.JOIN_READY.value,
            **self.run_ctx,
        ))
        snap = self.store.snapshot()
        self.bus.emit(JoinArtifactsIssued(known_nodes=sorted(snap.known_node_names), **self.run_ctx))
        return snap

    # ---------- joining ----------

    def _join_master(self, node: HostNode, ex: RemoteCommandExecutor, snap: ClusterSnapshot) -> int:
        with _operation("Failed to add master to cluster"):
            attempts = self._kubeadm_with_reset(
                ex, commands.join(snap.join_master_command), self.join_attempts, "join control plane"
            )
        self._stage_kubeconfig(ex)
        self._remove_master_taint(node, ex)
        self._add_worker_label(node, ex)
        return attempts

    def _join_worker(self, node: HostNode, ex: RemoteCommandExecutor, snap: ClusterSnapshot) -> int:
        with _operation("Failed to add worker to cluster"):
            attempts = self._kubeadm_with_reset(
                ex, commands.join(snap.join_worker_command), self.join_attempts, "join worker"
            )
        with _operation("Failed to create kube dir"):
            ex.execute(commands.create_kube_dirs(), retries=1)
        with _operation("Failed to sync kube config"):
            ex.execute(commands.write_root_kubeconfig(snap.kubeconfig_b64), retries=1)
            ex.execute(commands.write_user_kubeconfig(snap.kubeconfig_b64), retries=1)
        self._add_worker_label(node, ex)
        return attempts

    def join_node(self, node: HostNode, ex: RemoteCommandExecutor, snap: ClusterSnapshot) -> NodeJoinOutcome:
        role = "master" if node.is_master else "worker"
        if snap.is_known(node.name):
            log.info("[%s] already part of the cluster, skipping", node.name)
            self.bus.emit(NodeJoinSkipped(node=node.name, **self.run_ctx))
            return NodeJoinOutcome(name=node.name, role=role, status="SKIPPED")

        self.bus.emit(NodeJoinStarted(node=node.name, role=role, **self.run_ctx))
        if node.is_master:
            attempts = self._join_master(node, ex, snap)
        else:
            attempts = self._join_worker(node, ex, snap)
        self.bus.emit(NodeJoined(node=node.name, role=role, attempts=attempts, **self.run_ctx))
        return NodeJoinOutcome(name=node.name, role=role, status="JOINED", attempts=attempts)

    def join_nodes(self) -> None:
        snap = self.store.snapshot()
        if snap.phase is not BootstrapPhase.JOIN_READY:
            raise BootstrapError(f"Cannot join nodes in phase {snap.phase.value}")
        log.info("Joining nodes to cluster")

        def _task(node: HostNode, ex: RemoteCommandExecutor) -> None:
            if node.is_first_master:
                return
            try:
                outcome = self.join_node(node, ex, snap)
            except Exception as e:
                role = "master" if node.is_master else "worker"
                self._record(NodeJoinOutcome(name=node.name, role=role, status="FAILED", error=str(e)))
                raise
            self._record(outcome)

        self.dispatcher.run_on_nodes(NodeFilter.K8S, _task)

    # ---------- local kubeconfig ----------

    def write_local_kubeconfig(self, snap: Optional[ClusterSnapshot] = None) -> Path:
        snap = snap or self.store.snapshot()
        server = f"https://{self.first_master.internal_address}:{defaults.DEFAULT_API_SERVER_PORT}"
        try:
            raw = base64.b64decode(snap.kubeconfig_b64, validate=True).decode()
        except (binascii.Error, UnicodeDecodeError) as e:
            raise BootstrapError("Failed to load kubeconfig", ParseError(str(e))) from e

        with _operation("Failed to load kubeconfig"):
            content = rewrite_kubeconfig_server(raw, server)

        path = Path(self.cfg.workdir) / defaults.LOCAL_KUBECONFIG
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
            path.chmod(0o600)
        except OSError as e:
            raise BootstrapError("Failed to load kubeconfig", FilesystemError(f"{path}: {e}")) from e

        log.info("Kubeconfig written to %s (server %s)", path, server)
        self.bus.emit(KubeconfigWritten(path=str(path), server=server, **self.run_ctx))
        return path

    # ---------- whole protocol ----------

    def run(self) -> BootstrapReport:
        self.bus.emit(BootstrapStarted(
            version=self.cfg.kubernetes.version, first_master=self.first_master.name, **self.run_ctx
        ))
        try:
            self.detect()
            self.initialize()
            snap = self.issue_join_artifacts()
            self.join_nodes()
            self.report.version = snap.control_plane_version or self.cfg.kubernetes.version
            self.report.kubeconfig_path = str(self.write_local_kubeconfig(snap))
        except Exception as e:
            self.bus.emit(BootstrapFailed(error=redact(str(e)), **self.run_ctx))
            self.bus.emit(BootstrapSummary(
                status="FAILED",
                joined=self.report.count("JOINED"),
                skipped=self.report.count("SKIPPED"),
                error=redact(str(e)),
                **self.run_ctx,
            ))
            raise

        self.bus.emit(BootstrapSummary(
            status="OK",
            joined=self.report.count("JOINED"),
            skipped=self.report.count("SKIPPED"),
            **self.run_ctx,
        ))
        log.info("Bootstrap finished: %s", self.report.summary())
        return self.report
