# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/provision/downloader.py

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from pathlib import Path
from typing import Optional, Protocol

import requests

from kubeseed.errors import DownloadError, FilesystemError
from kubeseed.files.binaries import BinaryArtifact

log = logging.getLogger("kubeseed")


class Downloader(Protocol):
    def fetch(self, artifact: BinaryArtifact) -> None:
        """Place the artifact at ``artifact.path`` or raise DownloadError."""
        ...


def _extract_member(tarball: Path, member: str, dest: Path) -> None:
    with tarfile.open(tarball, "r:gz") as tar:
        try:
            info = tar.getmember(member)
        except KeyError as e:
            raise DownloadError(f"{member} not found in {tarball.name}") from e
        src = tar.extractfile(info)
        if src is None:
            raise DownloadError(f"{member} in {tarball.name} is not a regular file")
        with src, open(dest, "wb") as out:
            shutil.copyfileobj(src, out)


class HttpDownloader:
    """
    Plain HTTP(S) GET with requests. The body is streamed to a ``.part``
    file and renamed into place, so an interrupted transfer never leaves a
    truncated file at the final path.
    """

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 60.0,
        chunk_size: int = 1024 * 1024,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.chunk_size = chunk_size

    def _get(self, url: str, dest: Path) -> None:
        try:
            with self.session.get(url, stream=True, timeout=self.timeout, allow_redirects=True) as r:
                r.raise_for_status()
                with open(dest, "wb") as f:
                    for chunk in r.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            f.write(chunk)
        except (requests.RequestException, OSError) as e:
            dest.unlink(missing_ok=True)
            raise DownloadError(f"GET {url} failed: {e}") from e

    def fetch(self, artifact: BinaryArtifact) -> None:
        dest = Path(artifact.path)
        log.debug("$ %s", artifact.get_cmd)

        if artifact.archive_member:
            tarball = dest.parent / artifact.url.rsplit("/", 1)[-1]
            self._get(artifact.url, tarball)
            part = dest.with_name(dest.name + ".part")
            try:
                _extract_member(tarball, artifact.archive_member, part)
                os.replace(part, dest)
            except (tarfile.TarError, OSError) as e:
                part.unlink(missing_ok=True)
                raise DownloadError(f"Failed to unpack {tarball.name}: {e}") from e
            finally:
                tarball.unlink(missing_ok=True)
        else:
            part = dest.with_name(dest.name + ".part")
            self._get(artifact.url, part)
            try:
                os.replace(part, dest)
            except OSError as e:
                part.unlink(missing_ok=True)
                raise FilesystemError(f"Failed to move {part} to {dest}: {e}") from e

        try:
            dest.chmod(0o755)
        except OSError as e:
            raise FilesystemError(f"Failed to chmod {dest}: {e}") from e
