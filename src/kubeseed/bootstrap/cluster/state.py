# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/bootstrap/cluster/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set

from kubeseed.errors import InvalidTransitionError

from .join_artifacts import JoinArtifacts


class BootstrapPhase(str, Enum):
    UNKNOWN = "unknown"
    DETECTING = "detecting"
    EXISTS = "exists"
    ABSENT = "absent"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    ISSUING_JOIN_ARTIFACTS = "issuing_join_artifacts"
    JOIN_READY = "join_ready"


_TRANSITIONS: Dict[BootstrapPhase, Set[BootstrapPhase]] = {
    BootstrapPhase.UNKNOWN: {BootstrapPhase.DETECTING},
    BootstrapPhase.DETECTING: {BootstrapPhase.EXISTS, BootstrapPhase.ABSENT},
    BootstrapPhase.ABSENT: {BootstrapPhase.INITIALIZING},
    BootstrapPhase.INITIALIZING: {BootstrapPhase.INITIALIZED},
    BootstrapPhase.EXISTS: {BootstrapPhase.ISSUING_JOIN_ARTIFACTS},
    BootstrapPhase.INITIALIZED: {BootstrapPhase.ISSUING_JOIN_ARTIFACTS},
    BootstrapPhase.ISSUING_JOIN_ARTIFACTS: {BootstrapPhase.JOIN_READY},
    BootstrapPhase.JOIN_READY: set(),
}


@dataclass(frozen=True)
class ClusterSnapshot:
    """Read-only view handed to join tasks once artifacts are published."""
    phase: BootstrapPhase
    exists: bool
    control_plane_version: str = ""
    join_master_command: str = ""
    join_worker_command: str = ""
    cluster_info: str = ""
    kubeconfig_b64: str = ""
    known_node_names: FrozenSet[str] = field(default_factory=frozenset)

    def is_known(self, name: str) -> bool:
        return name in self.known_node_names


class ClusterStatusStore:
    """
    Bootstrap state for one run. Written only from the first control-plane
    node; every access goes through the lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._phase = BootstrapPhase.UNKNOWN
        self._exists = False
        self._version = ""
        self._artifacts: Optional[JoinArtifacts] = None

    @property
    def phase(self) -> BootstrapPhase:
        with self._lock:
            return self._phase

    @property
    def exists(self) -> bool:
        with self._lock:
            return self._exists

    def transition(self, target: BootstrapPhase) -> BootstrapPhase:
        """Move to ``target`` and return the previous phase."""
        with self._lock:
            previous = self._phase
            if target not in _TRANSITIONS[previous]:
                raise InvalidTransitionError(f"illegal bootstrap transition {previous.value} -> {target.value}")
            self._phase = target
            return previous

    def mark_exists(self) -> bool:
        """Flip ``exists`` to True. Returns False when it already was."""
        with self._lock:
            if self._exists:
                return False
            self._exists = True
            return True

    def set_version(self, version: str) -> None:
        with self._lock:
            self._version = version

    def publish_join_artifacts(self, artifacts: JoinArtifacts) -> None:
        with self._lock:
            if self._phase is not BootstrapPhase.ISSUING_JOIN_ARTIFACTS:
                raise InvalidTransitionError(
                    f"join artifacts can only be published while issuing, not in {self._phase.value}"
                )
            self._artifacts = artifacts
            self._phase = BootstrapPhase.JOIN_READY

    def snapshot(self) -> ClusterSnapshot:
        with self._lock:
            a = self._artifacts
            if a is None:
                return ClusterSnapshot(phase=self._phase, exists=self._exists, control_plane_version=self._version)
            return ClusterSnapshot(
                phase=self._phase,
                exists=self._exists,
                control_plane_version=self._version,
                join_master_command=a.master_command,
                join_worker_command=a.worker_command,
                cluster_info=a.cluster_info,
                kubeconfig_b64=a.kubeconfig_b64,
                known_node_names=a.known_node_names,
            )
