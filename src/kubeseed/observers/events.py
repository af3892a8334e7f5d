# src/kubeseed/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single installer invocation
    cluster: str      # cluster name from the config file

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(cluster: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "cluster": cluster,
    }


# ---------------------------------------------------------------------
# Binary provisioning
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ProvisionStarted(BaseEvent):
    version: str
    architectures: List[str]
    zone: Optional[str]

@dataclass(frozen=True)
class ArtifactDownloadAttempt(BaseEvent):
    name: str
    arch: str
    attempt: int
    url: str

@dataclass(frozen=True)
class ArtifactReady(BaseEvent):
    name: str
    arch: str
    path: str
    downloaded: bool

@dataclass(frozen=True)
class ProvisionFailed(BaseEvent):
    error: str

@dataclass(frozen=True)
class ProvisionSummary(BaseEvent):
    artifacts: int
    downloaded: int


# ---------------------------------------------------------------------
# Cluster bootstrap
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BootstrapStarted(BaseEvent):
    version: str
    first_master: str

@dataclass(frozen=True)
class PhaseChanged(BaseEvent):
    previous: str
    phase: str

@dataclass(frozen=True)
class ClusterDetected(BaseEvent):
    exists: bool
    version: str

@dataclass(frozen=True)
class InitAttempt(BaseEvent):
    node: str
    attempt: int

@dataclass(frozen=True)
class JoinArtifactsIssued(BaseEvent):
    known_nodes: List[str]

@dataclass(frozen=True)
class NodeJoinStarted(BaseEvent):
    node: str
    role: str         # "master" | "worker"

@dataclass(frozen=True)
class NodeJoinSkipped(BaseEvent):
    node: str

@dataclass(frozen=True)
class NodeJoined(BaseEvent):
    node: str
    role: str
    attempts: int

@dataclass(frozen=True)
class KubeconfigWritten(BaseEvent):
    path: str
    server: str

@dataclass(frozen=True)
class BootstrapFailed(BaseEvent):
    error: str

@dataclass(frozen=True)
class BootstrapSummary(BaseEvent):
    status: str       # "OK" | "FAILED"
    joined: int
    skipped: int
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Node preparation
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodePrepared(BaseEvent):
    node: str
    stage: str        # "os" | "binaries"
