# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/addons/dns.py

from __future__ import annotations

import logging
from typing import Protocol

from kubeseed.bootstrap.cluster import commands
from kubeseed.execution.executor import RemoteCommandExecutor

log = logging.getLogger("kubeseed")


class ClusterDnsProvisioner(Protocol):
    def provision(self, executor: RemoteCommandExecutor) -> None: ...


class CoreDnsProvisioner:
    """
    kubeadm deploys CoreDNS itself; this only blocks until the deployment
    has rolled out so the join phase starts against a working cluster DNS.
    """

    def __init__(self, *, timeout: str = "300s", retries: int = 2):
        self.timeout = timeout
        self.retries = retries

    def provision(self, executor: RemoteCommandExecutor) -> None:
        log.info("[%s] Waiting for coredns rollout", executor.node.name)
        executor.execute(
            commands.rollout_status("deployment", "coredns", timeout=self.timeout),
            retries=self.retries,
        )
