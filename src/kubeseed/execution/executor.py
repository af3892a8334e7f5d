# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/execution/executor.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from kubeseed.config.models import HostNode
from kubeseed.errors import RemoteCommandError
from kubeseed.utils.ssh_runner import SSHRunner

log = logging.getLogger("kubeseed")


@dataclass(frozen=True)
class RemoteCommandResult:
    command: str
    output: str
    exit_status: Optional[int]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_status == 0


class RemoteCommandExecutor(Protocol):
    """Runs shell commands on one node."""

    node: HostNode

    def execute(
        self, command: str, retries: int = 0, tolerates_failure: bool = False, *, log_output: bool = True
    ) -> RemoteCommandResult: ...


class FileTransferExecutor(RemoteCommandExecutor, Protocol):
    """An executor that can also push files to its node."""

    def put_file(self, local_path: Path, remote_path: str, *, mode: int = 0o755) -> None: ...

    def put_text(self, content: str, remote_path: str, *, mode: int = 0o644) -> None: ...


class SshCommandExecutor:
    """
    RemoteCommandExecutor over an SSHRunner.

    A command fails when it exits non-zero or the transport raises. The
    whole command is re-run up to ``retries`` extra times; on final failure
    RemoteCommandError is raised unless ``tolerates_failure`` is set, in which
    case the failed result is returned for the caller to inspect.
    ``log_output=False`` keeps stdout that carries credentials out of the
    trace log.
    """

    def __init__(self, node: HostNode, runner: SSHRunner, *, retry_delay: float = 0.0):
        self.node = node
        self.runner = runner
        self.retry_delay = retry_delay

    def _attempt(self, command: str) -> RemoteCommandResult:
        try:
            rc, out, err = self.runner.run(command)
        except Exception as e:  # paramiko raises a wide range of socket/SSH errors
            return RemoteCommandResult(command=command, output="", exit_status=None, error=str(e))

        output = out.strip()
        if rc != 0:
            detail = err.strip() or output
            return RemoteCommandResult(command=command, output=output, exit_status=rc, error=detail or f"exit {rc}")
        return RemoteCommandResult(command=command, output=output, exit_status=rc)

    def execute(
        self, command: str, retries: int = 0, tolerates_failure: bool = False, *, log_output: bool = True
    ) -> RemoteCommandResult:
        log.debug("[%s] $ %s", self.node.name, command)
        result = None
        for attempt in range(retries + 1):
            result = self._attempt(command)
            if result.ok:
                if result.output and log_output:
                    log.debug("[%s][stdout]\n%s", self.node.name, result.output)
                return result
            log.debug("[%s][exit %s] attempt %d/%d: %s",
                      self.node.name, result.exit_status, attempt + 1, retries + 1, result.error)
            if attempt < retries and self.retry_delay:
                time.sleep(self.retry_delay)

        if tolerates_failure:
            log.warning("[%s] ignoring failed command: %s (%s)", self.node.name, command, result.error)
            return result
        raise RemoteCommandError(self.node.name, command, result.exit_status, result.output, result.error or "")

    def put_file(self, local_path: Path, remote_path: str, *, mode: int = 0o755) -> None:
        log.debug("[%s] upload %s -> %s", self.node.name, local_path, remote_path)
        self.runner.put_file(local_path, remote_path, sudo=True, mode=mode)

    def put_text(self, content: str, remote_path: str, *, mode: int = 0o644) -> None:
        log.debug("[%s] write %s (%d bytes)", self.node.name, remote_path, len(content))
        self.runner.put_text(content, remote_path, sudo=True, mode=mode)

    def close(self) -> None:
        self.runner.close()
