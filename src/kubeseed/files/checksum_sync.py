# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/files/checksum_sync.py

"""
Builds checksum table entries from the digests upstream publishes next to
each release artifact. Always talks to the canonical hosts; the mirror does
not publish sidecar files.
"""

from __future__ import annotations

import hashlib
import logging
import tempfile
from pathlib import Path
from typing import Iterable, Optional

import requests
import yaml

from kubeseed.config import defaults
from kubeseed.errors import ChecksumMismatchError, DownloadError, FilesystemError
from kubeseed.provision.downloader import _extract_member
from .binaries import BinaryArtifact, check_architecture, resolve_artifacts
from .checksums import ChecksumTable, sha256_file

log = logging.getLogger("kubeseed")


def _first_token(body: str, url: str) -> str:
    token = (body or "").strip().split()
    if not token or len(token[0]) != 64:
        raise DownloadError(f"unexpected checksum file at {url}")
    return token[0].lower()


class ChecksumFetcher:
    def __init__(self, *, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    def _get_text(self, url: str) -> str:
        try:
            r = self.session.get(url, timeout=self.timeout)
            r.raise_for_status()
        except requests.RequestException as e:
            raise DownloadError(f"GET {url} failed: {e}") from e
        return r.text

    def _get_file(self, url: str, dest: Path) -> None:
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in r.iter_content(chunk_size=1024 * 1024):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError) as e:
            raise DownloadError(f"GET {url} failed: {e}") from e

    def sidecar_digest(self, artifact: BinaryArtifact) -> str:
        url = f"{artifact.url}.sha256"
        return _first_token(self._get_text(url), url)

    def extracted_digest(self, artifact: BinaryArtifact) -> str:
        """
        helm ships a tarball; the table holds the digest of the binary inside,
        so verify the tarball against its sidecar and hash the extracted member.
        """
        url = f"{artifact.url}.sha256sum"
        tar_digest = _first_token(self._get_text(url), url)
        with tempfile.TemporaryDirectory(prefix="kubeseed-") as tmp:
            tarball = Path(tmp) / artifact.url.rsplit("/", 1)[-1]
            self._get_file(artifact.url, tarball)
            actual = sha256_file(tarball)
            if actual != tar_digest:
                raise ChecksumMismatchError(str(tarball), tar_digest, actual)
            member = Path(tmp) / artifact.name
            _extract_member(tarball, artifact.archive_member, member)
            return sha256_file(member)

    def digest(self, artifact: BinaryArtifact) -> str:
        if artifact.archive_member:
            return self.extracted_digest(artifact)
        return self.sidecar_digest(artifact)

    def fetch(
        self,
        kube_version: str,
        architectures: Iterable[str],
        *,
        cni_version: str = defaults.DEFAULT_CNI_VERSION,
        helm_version: str = defaults.DEFAULT_HELM_VERSION,
    ) -> ChecksumTable:
        table = ChecksumTable()
        for arch in architectures:
            check_architecture(arch)
            # only urls are needed; the path is never touched
            artifacts = resolve_artifacts(
                kube_version, arch, Path("."), None, cni_version=cni_version, helm_version=helm_version
            )
            for artifact in artifacts:
                if not artifact.verify:
                    continue
                log.info("Fetching sha256 of %s %s (%s)", artifact.name, artifact.version, arch)
                table.add(artifact.name, arch, artifact.version, self.digest(artifact))
        return table


def write_table(table: ChecksumTable, path: Path) -> Path:
    """Merge ``table`` into the override file at ``path`` (created if missing)."""
    path = Path(path)
    merged = ChecksumTable()
    try:
        if path.is_file():
            merged.merge(yaml.safe_load(path.read_text()) or {})
        merged.merge(table.to_dict())
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(merged.to_dict(), default_flow_style=False, sort_keys=True))
    except OSError as e:
        raise FilesystemError(f"Failed to write checksum table {path}: {e}") from e
    return path
