# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/files/checksums.py

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from kubeseed.errors import ChecksumMismatchError, ChecksumUnsupportedError, FilesystemError
from .binaries import BinaryArtifact

log = logging.getLogger("kubeseed")

DATA_DIR = Path(__file__).parent / "data"
BUILTIN_TABLE = DATA_DIR / "checksums.yaml"

# name -> arch -> version -> sha256 hex
Table = Dict[str, Dict[str, Dict[str, str]]]


def sha256_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as e:
        raise FilesystemError(f"Failed to check SHA256 of {path}: {e}") from e
    return digest.hexdigest()


class ChecksumTable:
    """
    Known-good SHA-256 digests keyed by binary name, architecture and version.

    The table shipped with the package is extended by an optional override
    file (``<workdir>/checksums.yaml``) with the same layout::

        kubeadm:
          amd64:
            v1.21.0: <sha256>
    """

    def __init__(self, entries: Optional[Table] = None):
        self._entries: Table = {}
        # override files that were asked for but do not exist yet
        self.missing_overrides: List[Path] = []
        if entries:
            self.merge(entries)

    @classmethod
    def load(cls, *paths: Path) -> "ChecksumTable":
        table = cls()
        for p in (BUILTIN_TABLE, *paths):
            p = Path(p)
            if not p.is_file():
                if p != BUILTIN_TABLE:
                    table.missing_overrides.append(p)
                continue
            log.debug("Loading checksum table %s", p)
            data = yaml.safe_load(p.read_text()) or {}
            table.merge(data)
        return table

    def merge(self, entries: Table) -> None:
        for name, by_arch in (entries or {}).items():
            for arch, by_version in (by_arch or {}).items():
                for version, digest in (by_version or {}).items():
                    self.add(name, arch, str(version), str(digest))

    def add(self, name: str, arch: str, version: str, digest: str) -> None:
        self._entries.setdefault(name, {}).setdefault(arch, {})[version] = digest.strip().lower()

    def get(self, name: str, arch: str, version: str) -> Optional[str]:
        return self._entries.get(name, {}).get(arch, {}).get(version)

    def expected(self, artifact: BinaryArtifact) -> str:
        digest = self.get(artifact.name, artifact.arch, artifact.version)
        if not digest:
            msg = (
                f"No SHA256 found for {artifact.name} {artifact.version} ({artifact.arch}). "
                f"{artifact.version} is not supported."
            )
            if self.missing_overrides:
                msg += (
                    " No digests have been fetched yet: run `kubeseed checksums fetch -f <cluster file>`"
                    f" to write {self.missing_overrides[0]}."
                )
            raise ChecksumUnsupportedError(msg)
        return digest

    def to_dict(self) -> Table:
        return {n: {a: dict(v) for a, v in archs.items()} for n, archs in self._entries.items()}

    def verify(self, artifact: BinaryArtifact) -> None:
        """
        Raises ChecksumUnsupportedError when the table has no entry and
        ChecksumMismatchError when the file on disk differs from it.
        """
        expected = self.expected(artifact)
        actual = sha256_file(artifact.path)
        if actual != expected:
            raise ChecksumMismatchError(str(artifact.path), expected, actual)
        log.debug("sha256 ok for %s (%s)", artifact.path, actual)
