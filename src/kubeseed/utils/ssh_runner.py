# src/kubeseed/utils/ssh_runner.py

from __future__ import annotations

import itertools
import os
import shlex
import threading
from pathlib import Path
from typing import Optional

import paramiko

_counter = itertools.count(1)


def sudo_sh(cmd: str) -> str:
    """Wrap a shell snippet so it runs as root with the caller's environment."""
    return f"sudo -E /bin/sh -c {shlex.quote(cmd)}"


class SSHRunner:
    """
    Thin wrapper over one paramiko connection. A paramiko client is not
    safe for concurrent exec_command calls, so every call is serialized.
    """

    def __init__(self, client: paramiko.SSHClient, *, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout
        self._lock = threading.Lock()

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[int, str, str]:
        if sudo:
            cmd = sudo_sh(cmd)

        with self._lock:
            stdin, stdout, stderr = self.client.exec_command(cmd, timeout=timeout or self.timeout)
            out = stdout.read().decode("utf-8", errors="replace")
            err = stderr.read().decode("utf-8", errors="replace")
            rc = stdout.channel.recv_exit_status()
        return rc, out, err

    def put_file(self, local_path: str | Path, remote_path: str, *, sudo: bool = False, mode: int = 0o755) -> None:
        """
        Upload a local file. With sudo the file is staged in /tmp and moved
        into place as root so root-owned targets keep their ownership.
        """
        if sudo:
            tmp = f"/tmp/.kubeseed.upload.{os.getpid()}.{next(_counter)}"
            self.put_file(local_path, tmp, mode=mode)
            rc, _, err = self.run(
                f"install -m {oct(mode)[2:]} -o root -g root {tmp} {shlex.quote(remote_path)} ; rm -f {tmp}",
                sudo=True,
            )
            if rc != 0:
                raise IOError(f"failed to install {remote_path}: {err.strip()}")
            return

        with self._lock:
            sftp = self.client.open_sftp()
            try:
                sftp.put(str(local_path), str(remote_path))
                sftp.chmod(str(remote_path), mode)
            finally:
                sftp.close()

    def put_text(self, content: str, remote_path: str, *, sudo: bool = False, mode: int = 0o644) -> None:
        if sudo:
            tmp = f"/tmp/.kubeseed.tmp.{os.getpid()}.{next(_counter)}"
            self.put_text(content, tmp, mode=mode)
            rc, _, err = self.run(
                f"install -m {oct(mode)[2:]} -o root -g root {tmp} {shlex.quote(remote_path)} ; rm -f {tmp}",
                sudo=True,
            )
            if rc != 0:
                raise IOError(f"failed to install {remote_path}: {err.strip()}")
            return

        with self._lock:
            sftp = self.client.open_sftp()
            try:
                with sftp.open(remote_path, "w") as f:
                    f.write(content)
                sftp.chmod(remote_path, mode)
            finally:
                sftp.close()

    def close(self) -> None:
        self.client.close()
