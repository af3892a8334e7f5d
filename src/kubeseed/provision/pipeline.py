# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/provision/pipeline.py

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from kubeseed.config import defaults
from kubeseed.config.models import ClusterConfig
from kubeseed.errors import ChecksumMismatchError, DownloadError, FilesystemError
from kubeseed.files.binaries import BinaryArtifact, check_architecture, resolve_artifacts
from kubeseed.files.checksums import ChecksumTable
from kubeseed.observers.dispatcher import EventBus
from kubeseed.observers.events import (
    new_ctx,
    ProvisionStarted,
    ArtifactDownloadAttempt,
    ArtifactReady,
    ProvisionFailed,
    ProvisionSummary,
)
from kubeseed.utils.retry import with_retry
from .downloader import Downloader, HttpDownloader

log = logging.getLogger("kubeseed")

DOWNLOAD_ATTEMPTS = 5


@dataclass
class ProvisionReport:
    artifacts: Dict[str, List[BinaryArtifact]] = field(default_factory=dict)
    downloaded: List[str] = field(default_factory=list)

    def for_arch(self, arch: str) -> List[BinaryArtifact]:
        return self.artifacts.get(arch, [])

    def summary(self) -> str:
        total = sum(len(a) for a in self.artifacts.values())
        return f"artifacts={total} downloaded={len(self.downloaded)} archs={','.join(self.artifacts)}"


class ProvisioningPipeline:
    """
    Resolves, downloads and verifies the binaries every architecture in the
    cluster needs, under ``<workdir>/<prefix>/<version>/<arch>/``.

    Policy per artifact:
      - already on disk: verify once; a mismatch is fatal, nothing is re-downloaded
      - missing: up to 5 download attempts, each followed by verification;
        a mismatching file is deleted before the next attempt and after the last
      - transport errors abort at once
    Architectures run in parallel; the artifacts of one architecture run in
    order, so no file is ever written by two threads.
    """

    def __init__(
        self,
        *,
        workdir: Path,
        table: ChecksumTable,
        downloader: Optional[Downloader] = None,
        prefix: str = defaults.DEFAULT_PRE_DIR,
        cni_version: str = defaults.DEFAULT_CNI_VERSION,
        helm_version: str = defaults.DEFAULT_HELM_VERSION,
        platform_version: Optional[str] = None,
        attempts: int = DOWNLOAD_ATTEMPTS,
        retry_delay: float = 0.0,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.workdir = Path(workdir)
        self.table = table
        self.downloader = downloader or HttpDownloader()
        self.prefix = prefix
        self.cni_version = cni_version
        self.helm_version = helm_version
        self.platform_version = platform_version
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.bus = bus or EventBus([])
        self.run_ctx = run_ctx or new_ctx(cluster="-")

    @classmethod
    def from_config(cls, cfg: ClusterConfig, **kwargs) -> "ProvisioningPipeline":
        table = kwargs.pop("table", None) or ChecksumTable.load(Path(cfg.workdir) / "checksums.yaml")
        return cls(
            workdir=cfg.workdir,
            table=table,
            prefix=cfg.download_prefix,
            cni_version=cfg.cni_version,
            helm_version=cfg.helm_version,
            platform_version=cfg.platform_version,
            retry_delay=cfg.retry_delay_seconds,
            **kwargs,
        )

    def target_dir(self, version: str, arch: str) -> Path:
        return self.workdir / self.prefix / version / arch

    # ---------- per artifact ----------

    def _download_verified(self, artifact: BinaryArtifact) -> None:
        attempt_no = 0

        def _attempt() -> None:
            nonlocal attempt_no
            attempt_no += 1
            self.bus.emit(ArtifactDownloadAttempt(
                name=artifact.name, arch=artifact.arch, attempt=attempt_no, url=artifact.url, **self.run_ctx
            ))
            try:
                self.downloader.fetch(artifact)
            except DownloadError as e:
                raise DownloadError(f"Failed to download {artifact.name} binary: {artifact.get_cmd}: {e}") from e
            self.table.verify(artifact)

        def _discard(attempt: int, exc: Exception) -> None:
            log.warning("Removing corrupt %s after attempt %d", artifact.path, attempt)
            artifact.path.unlink(missing_ok=True)

        try:
            with_retry(
                self.attempts,
                _attempt,
                _discard,
                retry_on=(ChecksumMismatchError,),
                delay=self.retry_delay,
                label=f"download {artifact.name} ({artifact.arch})",
            )
        except ChecksumMismatchError:
            artifact.path.unlink(missing_ok=True)
            raise

    def ensure(self, artifact: BinaryArtifact) -> bool:
        """Make one artifact available and verified. Returns True if it was downloaded."""
        log.info("Downloading %s (%s) ...", artifact.name, artifact.arch)

        if not artifact.verify:
            if artifact.path.exists():
                return False
            try:
                self.downloader.fetch(artifact)
            except DownloadError as e:
                raise DownloadError(f"Failed to download {artifact.name} binary: {artifact.get_cmd}: {e}") from e
            return True

        # unsupported versions fail before any transfer
        self.table.expected(artifact)

        if artifact.path.exists():
            self.table.verify(artifact)
            return False

        self._download_verified(artifact)
        return True

    # ---------- per architecture ----------

    def _provision_arch(self, version: str, arch: str, zone: Optional[str]) -> tuple[List[BinaryArtifact], List[str]]:
        target = self.target_dir(version, arch)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"Failed to create download target dir {target}: {e}") from e

        artifacts = resolve_artifacts(
            version,
            arch,
            target,
            zone,
            cni_version=self.cni_version,
            helm_version=self.helm_version,
            platform_version=self.platform_version,
        )
        downloaded: List[str] = []
        for artifact in artifacts:
            fresh = self.ensure(artifact)
            if fresh:
                downloaded.append(str(artifact.path))
            self.bus.emit(ArtifactReady(
                name=artifact.name, arch=arch, path=str(artifact.path), downloaded=fresh, **self.run_ctx
            ))
        return artifacts, downloaded

    def provision(self, version: str, architectures: Sequence[str], zone: Optional[str] = None) -> ProvisionReport:
        archs = list(dict.fromkeys(architectures))
        self.bus.emit(ProvisionStarted(version=version, architectures=archs, zone=zone, **self.run_ctx))
        log.info("Downloading installation files for %s (%s)", version, ", ".join(archs))

        report = ProvisionReport()
        try:
            for arch in archs:
                check_architecture(arch)

            if not archs:
                return report

            with ThreadPoolExecutor(max_workers=len(archs), thread_name_prefix="download") as pool:
                futures = {arch: pool.submit(self._provision_arch, version, arch, zone) for arch in archs}
                for arch in archs:
                    artifacts, downloaded = futures[arch].result()
                    report.artifacts[arch] = artifacts
                    report.downloaded.extend(downloaded)
        except Exception as e:
            self.bus.emit(ProvisionFailed(error=str(e), **self.run_ctx))
            raise

        self.bus.emit(ProvisionSummary(
            artifacts=sum(len(a) for a in report.artifacts.values()),
            downloaded=len(report.downloaded),
            **self.run_ctx,
        ))
        log.info("Provisioning finished: %s", report.summary())
        return report
