# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/kubeseed/logging/log.py

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from datetime import datetime, timezone
import uuid

from kubeseed.config import defaults

# bootstrap secrets that show up in kubeadm commands and their output
_SECRET_PATTERNS = (
    (re.compile(r"(--token\s+)[^\s'\"]+"), r"\1******"),
    (re.compile(r"(--certificate-key\s+)[^\s'\"]+"), r"\1******"),
    (re.compile(r"(--discovery-token-ca-cert-hash\s+sha256:)[^\s'\"]+"), r"\1******"),
    (re.compile(r"(\[upload-certs\] Using certificate key:\s*)\S+"), r"\1******"),
    # kubeconfig and bootstrap config pushed as `echo <b64> | base64 -d`
    (re.compile(r"(echo\s+)[A-Za-z0-9+/]+={0,2}(?=\s*\|\s*base64 -d)"), r"\1******"),
    # a bare base64 dump, e.g. `base64 --wrap=0` of admin.conf
    (re.compile(r"[A-Za-z0-9+/]{200,}={0,2}"), "******"),
)


def redact(text: str) -> str:
    for pattern, repl in _SECRET_PATTERNS:
        text = pattern.sub(repl, text)
    return text


class RedactingFilter(logging.Filter):
    """Masks join credentials and kubeconfig payloads before a record is written."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


def _log_dir(base_dir: Path | None) -> Path:
    if base_dir is not None:
        return base_dir
    env = os.environ.get(defaults.LOG_DIR_ENV_VAR)
    if env:
        return Path(env)
    return Path.home() / ".kubeseed" / "logs"


def init_logging(
    *,
    base_dir: Path | None = None,
    name: str = "kubeseed",
    verbose: bool = False,
) -> tuple[logging.Logger, str, Path]:
    """
    Per-run log setup.

    The file under ``~/.kubeseed/logs`` (or ``$KUBESEED_LOG_DIR``) gets every
    remote command and its output; the console gets INFO, or DEBUG with
    ``--verbose``. Both handlers mask join secrets. The generated run id is
    returned so events can carry it.
    """
    run_id = str(uuid.uuid4())

    log_dir = _log_dir(base_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_path = log_dir / f"{name}-{ts}-{run_id}.log"

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    # node tasks run on worker threads; the thread name tells them apart
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-7s | %(threadName)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    secrets = RedactingFilter()

    fh = logging.FileHandler(log_path)
    fh.setLevel(logging.DEBUG)
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in (fh, ch):
        handler.setFormatter(formatter)
        handler.addFilter(secrets)
        logger.addHandler(handler)

    logger.info("=== kubeseed run %s ===", run_id)
    logger.debug("trace log: %s", log_path)

    return logger, run_id, log_path
