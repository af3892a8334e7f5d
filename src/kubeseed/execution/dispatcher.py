# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/execution/dispatcher.py

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Callable, Dict, List, Optional

from kubeseed.config.models import HostNode
from kubeseed.errors import NodeTaskError
from .executor import RemoteCommandExecutor

log = logging.getLogger("kubeseed")

NodeTask = Callable[[HostNode, RemoteCommandExecutor], None]
Connector = Callable[[HostNode], RemoteCommandExecutor]


class NodeFilter(Enum):
    ALL = "all"
    MASTERS = "masters"
    K8S = "k8s"                    # workers and masters
    FIRST_MASTER = "first_master"

    def matches(self, node: HostNode) -> bool:
        if self is NodeFilter.ALL:
            return True
        if self is NodeFilter.MASTERS:
            return node.is_master
        if self is NodeFilter.K8S:
            return node.is_master or node.is_worker
        return node.is_first_master


class NodeTaskDispatcher:
    """
    Runs a task on every node matching a filter, either on a thread pool or
    one node after another.

    Each node gets one executor for the whole run, created lazily through
    ``connect`` and reused by every later dispatch. A dispatch returns only
    after every task it started has finished, so two consecutive dispatches
    are ordered: everything the first one wrote is visible to the second.
    """

    def __init__(
        self,
        nodes: List[HostNode],
        connect: Connector,
        *,
        parallel: bool = True,
        max_workers: Optional[int] = None,
    ):
        self.nodes = list(nodes)
        self._connect = connect
        self.parallel = parallel
        self.max_workers = max_workers
        self._executors: Dict[str, RemoteCommandExecutor] = {}
        # guards the two dicts; connecting happens under the per-node lock only
        self._lock = threading.Lock()
        self._node_locks: Dict[str, threading.Lock] = {}

    def executor_for(self, node: HostNode) -> RemoteCommandExecutor:
        with self._lock:
            ex = self._executors.get(node.name)
            if ex is not None:
                return ex
            node_lock = self._node_locks.setdefault(node.name, threading.Lock())

        with node_lock:
            with self._lock:
                ex = self._executors.get(node.name)
            if ex is None:
                ex = self._connect(node)
                with self._lock:
                    self._executors[node.name] = ex
            return ex

    def select(self, node_filter: NodeFilter) -> List[HostNode]:
        return [n for n in self.nodes if node_filter.matches(n)]

    def _run_one(self, node: HostNode, fn: NodeTask) -> Optional[NodeTaskError]:
        try:
            fn(node, self.executor_for(node))
            return None
        except Exception as e:
            log.error("[%s] task %s failed: %s", node.name, getattr(fn, "__name__", fn), e)
            return NodeTaskError(node.name, e)

    def run_on_nodes(
        self,
        node_filter: NodeFilter,
        fn: NodeTask,
        tolerates_failure: bool = False,
    ) -> List[NodeTaskError]:
        """
        Returns the failures when ``tolerates_failure`` is set. Otherwise the
        first failure (in node order) is raised, chained to its cause.
        """
        targets = self.select(node_filter)
        if not targets:
            return []

        if self.parallel and len(targets) > 1:
            workers = self.max_workers or len(targets)
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="node") as pool:
                futures = [pool.submit(self._run_one, n, fn) for n in targets]
                results = [f.result() for f in futures]
        else:
            results = []
            for n in targets:
                err = self._run_one(n, fn)
                results.append(err)
                if err is not None and not tolerates_failure:
                    break

        failures = [r for r in results if r is not None]
        if failures and not tolerates_failure:
            raise failures[0] from failures[0].cause
        return failures

    def close(self) -> None:
        with self._lock:
            for name, ex in self._executors.items():
                close = getattr(ex, "close", None)
                if close is not None:
                    try:
                        close()
                    except Exception as e:
                        log.debug("[%s] error closing connection: %s", name, e)
            self._executors.clear()
