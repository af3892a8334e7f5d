# src/kubeseed/observers/console.py
from __future__ import annotations

import logging

import typer

from .events import BaseEvent

# chatty per-attempt events go to the log file only
_DEBUG_EVENTS = {"ArtifactDownloadAttempt", "InitAttempt"}


def _payload(event: BaseEvent) -> str:
    return ", ".join(
        f"{k}={v}" for k, v in event.dict().items() if k not in ("ts", "run_id", "cluster")
    )


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        k = event.__class__.__name__
        if k in _DEBUG_EVENTS:
            return
        typer.echo(f"[{event.ts}] {k} cluster={event.cluster} {{{_payload(event)}}}")


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        etype = event.__class__.__name__
        level = logging.DEBUG if etype in _DEBUG_EVENTS else logging.INFO
        self.logger.log(level, "[EVENT] %s run=%s: %s", etype, event.run_id, _payload(event))
