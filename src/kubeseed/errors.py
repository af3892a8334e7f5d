# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/errors.py
from __future__ import annotations

from typing import Optional

from kubeseed.logging.log import redact


class KubeseedError(RuntimeError):
    """Base class for installer failures."""


class UnsupportedArchitectureError(KubeseedError):
    """Raised when a host declares an architecture we have no binaries for."""


class ChecksumUnsupportedError(KubeseedError):
    """Raised when the checksum table has no entry for a binary/version/arch."""


class ChecksumMismatchError(KubeseedError):
    """Raised when a file's SHA-256 digest differs from the table."""

    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(f"SHA256 no match. {expected} not in {actual} {path}")
        self.path = path
        self.expected = expected
        self.actual = actual


class DownloadError(KubeseedError):
    """Transport failure while fetching an artifact."""


class FilesystemError(KubeseedError):
    """Local filesystem failure (mkdir, read, write)."""


class ParseError(KubeseedError):
    """Raised when join artifacts cannot be extracted from command output."""


class ConfigGenerationError(KubeseedError):
    """Raised when the kubeadm bootstrap configuration cannot be produced."""


class RemoteCommandError(KubeseedError):
    """A command executed on a node failed after all retries."""

    def __init__(self, node: str, command: str, exit_status: Optional[int], output: str = "", detail: str = ""):
        # message is masked; .command and .output keep the raw text
        msg = f"[{node}] command failed (exit {exit_status}): {command}"
        if detail:
            msg += f": {detail}"
        super().__init__(redact(msg))
        self.node = node
        self.command = command
        self.exit_status = exit_status
        self.output = output


class BootstrapError(KubeseedError):
    """Wraps a failure with the bootstrap operation that was being attempted."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        msg = operation if cause is None else f"{operation}: {cause}"
        super().__init__(msg)
        self.operation = operation


class NodeTaskError(KubeseedError):
    """A per-node task failed inside the dispatcher."""

    def __init__(self, node: str, cause: BaseException):
        super().__init__(f"[{node}] {cause}")
        self.node = node
        self.cause = cause


class InvalidTransitionError(KubeseedError):
    """Raised on an illegal bootstrap phase transition."""


class RetryError(KubeseedError):
    """Raised when a retried operation exhausts its attempts."""
