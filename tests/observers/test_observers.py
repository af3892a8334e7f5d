import logging

from kubeseed.observers.console import ConsoleObserver, LoggerObserver
from kubeseed.observers.dispatcher import EventBus
from kubeseed.observers.events import ArtifactDownloadAttempt, NodeJoined, new_ctx


class _Boom:
    def notify(self, event):
        raise RuntimeError("observer bug")


class _Collect:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def test_failing_observer_does_not_break_emit():
    ctx = new_ctx(cluster="cluster.local", run_id="r1")
    sink = _Collect()
    bus = EventBus([_Boom()])
    bus.subscribe(sink)

    bus.emit(NodeJoined(node="node2", role="worker", attempts=1, **ctx))

    assert [e.node for e in sink.events] == ["node2"]
    assert sink.events[0].dict()["run_id"] == "r1"


def test_console_observer_hides_attempt_events(capsys):
    ctx = new_ctx(cluster="c")
    obs = ConsoleObserver()
    obs.notify(ArtifactDownloadAttempt(name="kubeadm", arch="amd64", attempt=1, url="u", **ctx))
    obs.notify(NodeJoined(node="node2", role="worker", attempts=1, **ctx))

    out = capsys.readouterr().out
    assert "ArtifactDownloadAttempt" not in out
    assert "NodeJoined cluster=c" in out
    assert "node=node2" in out


def test_logger_observer_levels(caplog):
    logger = logging.getLogger("observer_test")
    ctx = new_ctx(cluster="c")
    obs = LoggerObserver(logger)
    with caplog.at_level(logging.DEBUG, logger="observer_test"):
        obs.notify(ArtifactDownloadAttempt(name="kubeadm", arch="amd64", attempt=2, url="u", **ctx))
        obs.notify(NodeJoined(node="node2", role="worker", attempts=1, **ctx))

    levels = [(r.levelno, r.getMessage().split()[1]) for r in caplog.records]
    assert levels == [(logging.DEBUG, "ArtifactDownloadAttempt"), (logging.INFO, "NodeJoined")]
