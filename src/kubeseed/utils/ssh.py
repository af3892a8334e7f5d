# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging

import paramiko

from kubeseed.config.models import HostNode
from kubeseed.utils.retry import retry
from kubeseed.utils.ssh_runner import SSHRunner

log = logging.getLogger("kubeseed")


def _load_pkey(path) -> paramiko.PKey | None:
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
    raise RuntimeError(f"Unsupported private key format for {path}")


def _log_retry(attempt: int, exc: Exception) -> None:
    log.info("SSH not ready (attempt %d, %s: %s), retrying...", attempt, type(exc).__name__, exc)


@retry(
    retries=5,
    delay=5,
    retry_on=(paramiko.ssh_exception.SSHException, OSError),
    on_retry=_log_retry,
)
def open_ssh(
    node: HostNode,
    *,
    connect_timeout: float = 30.0,
    cmd_timeout: float | None = None,
) -> SSHRunner:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(node.private_key_path) if node.private_key_path else None

    client.connect(
        hostname=node.address,
        port=node.port,
        username=node.user,
        password=node.password if not pkey else None,
        pkey=pkey,
        timeout=connect_timeout,
        allow_agent=pkey is None and node.password is None,
        look_for_keys=pkey is None and node.password is None,
    )
    log.debug("[%s] connected to %s@%s:%d", node.name, node.user, node.address, node.port)

    return SSHRunner(client, timeout=cmd_timeout)
