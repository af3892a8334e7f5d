import threading

import pytest

from kubeseed.errors import NodeTaskError
from kubeseed.execution.dispatcher import NodeFilter, NodeTaskDispatcher

from fakes import FakeExecutor, make_config


@pytest.fixture
def three_nodes(tmp_path):
    return make_config(
        tmp_path,
        hosts=[
            {"name": "m1", "address": "10.0.0.1"},
            {"name": "m2", "address": "10.0.0.2"},
            {"name": "w1", "address": "10.0.0.3"},
            {"name": "lb", "address": "10.0.0.4"},
        ],
        role_groups={"etcd": ["m1"], "master": ["m1", "m2"], "worker": ["w1"]},
    ).nodes()


def test_filters(three_nodes):
    d = NodeTaskDispatcher(three_nodes, FakeExecutor)
    assert [n.name for n in d.select(NodeFilter.ALL)] == ["m1", "m2", "w1", "lb"]
    assert [n.name for n in d.select(NodeFilter.MASTERS)] == ["m1", "m2"]
    assert [n.name for n in d.select(NodeFilter.K8S)] == ["m1", "m2", "w1"]
    assert [n.name for n in d.select(NodeFilter.FIRST_MASTER)] == ["m1"]


@pytest.mark.parametrize("parallel", [True, False])
def test_executor_is_cached_per_node(three_nodes, parallel):
    created = []

    def connect(node):
        created.append(node.name)
        return FakeExecutor(node)

    d = NodeTaskDispatcher(three_nodes, connect, parallel=parallel)
    seen = {}
    lock = threading.Lock()

    def task(node, ex):
        with lock:
            seen.setdefault(node.name, set()).add(id(ex))

    d.run_on_nodes(NodeFilter.ALL, task)
    d.run_on_nodes(NodeFilter.K8S, task)

    assert sorted(created) == ["lb", "m1", "m2", "w1"]
    assert all(len(ids) == 1 for ids in seen.values())



def test_parallel_dispatch_connects_concurrently(three_nodes):
    # every connect waits for the others; serialized connects would break the barrier
    barrier = threading.Barrier(len(three_nodes), timeout=5)

    def connect(node):
        barrier.wait()
        return FakeExecutor(node)

    d = NodeTaskDispatcher(three_nodes, connect, parallel=True)
    d.run_on_nodes(NodeFilter.ALL, lambda node, ex: None)

    assert sorted(d._executors) == ["lb", "m1", "m2", "w1"]


def test_same_node_connects_once_under_contention(three_nodes):
    calls = []
    started = threading.Event()
    release = threading.Event()

    def connect(node):
        calls.append(node.name)
        started.set()
        release.wait(5)
        return FakeExecutor(node)

    d = NodeTaskDispatcher(three_nodes, connect)
    node = three_nodes[0]
    results = []
    threads = [threading.Thread(target=lambda: results.append(d.executor_for(node))) for _ in range(3)]
    for t in threads:
        t.start()
    started.wait(5)
    release.set()
    for t in threads:
        t.join(5)

    assert calls == ["m1"]
    assert len({id(ex) for ex in results}) == 1

def test_failure_is_raised_with_cause(three_nodes):
    d = NodeTaskDispatcher(three_nodes, FakeExecutor, parallel=True)

    def task(node, ex):
        if node.name == "m2":
            raise ValueError("boom")

    with pytest.raises(NodeTaskError) as exc:
        d.run_on_nodes(NodeFilter.ALL, task)
    assert exc.value.node == "m2"
    assert isinstance(exc.value.__cause__, ValueError)


def test_tolerated_failures_are_returned(three_nodes):
    d = NodeTaskDispatcher(three_nodes, FakeExecutor, parallel=False)
    ran = []

    def task(node, ex):
        ran.append(node.name)
        if node.name in ("m1", "w1"):
            raise RuntimeError(node.name)

    failures = d.run_on_nodes(NodeFilter.ALL, task, tolerates_failure=True)
    assert [f.node for f in failures] == ["m1", "w1"]
    assert ran == ["m1", "m2", "w1", "lb"]


def test_sequential_stops_at_first_failure(three_nodes):
    d = NodeTaskDispatcher(three_nodes, FakeExecutor, parallel=False)
    ran = []

    def task(node, ex):
        ran.append(node.name)
        raise RuntimeError("nope")

    with pytest.raises(NodeTaskError):
        d.run_on_nodes(NodeFilter.ALL, task)
    assert ran == ["m1"]


def test_close_closes_executors(three_nodes):
    execs = []

    def connect(node):
        ex = FakeExecutor(node)
        execs.append(ex)
        return ex

    d = NodeTaskDispatcher(three_nodes, connect)
    d.run_on_nodes(NodeFilter.ALL, lambda n, ex: None)
    d.close()
    assert execs and all(ex.closed for ex in execs)
