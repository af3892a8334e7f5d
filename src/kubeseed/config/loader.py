# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/kubeseed/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from .models import ClusterConfig

log = logging.getLogger("kubeseed")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _merge_host_secrets(data: dict, secrets: dict) -> None:
    """
    ``hosts`` is a list, so secrets for it are matched by host name instead
    of being deep-merged positionally.
    """
    host_secrets = secrets.pop("hosts", None) or []
    by_name = {h.get("name"): h for h in data.get("hosts", []) if isinstance(h, dict)}
    for entry in host_secrets:
        target = by_name.get(entry.get("name"))
        if target is None:
            log.warning("secrets.yaml references unknown host %r, skipping", entry.get("name"))
            continue
        _deep_merge(target, entry)


def _find_secrets_file(config_path: Path) -> Path | None:
    """
    Locate secrets.yaml using this priority:

    1. KUBESEED_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the cluster config
    """
    env = os.environ.get("KUBESEED_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("KUBESEED_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = config_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_config(path: str | Path) -> ClusterConfig:
    """
    Load and validate a kubeseed cluster file.

    SSH passwords and similar values can be kept out of the cluster file in
    two ways:

    **secrets.yaml**
        A file mirroring the cluster file's structure, found through
        ``KUBESEED_SECRETS_FILE`` or next to the cluster file. Host entries
        are matched by ``name``; everything else is deep-merged before
        validation.

    **environment variables**
        ``${ENV_VAR}`` placeholders anywhere in either file are resolved at
        load time.
    """
    path = Path(path)
    data = _load_yaml(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path:
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_yaml(secrets_path)
        _merge_host_secrets(data, secrets)
        _deep_merge(data, secrets)
    else:
        log.debug("No secrets.yaml found, proceeding without secrets merge")

    # relative workdir is resolved against the cluster file
    workdir = data.get("workdir")
    if workdir and not Path(workdir).is_absolute():
        data["workdir"] = str((path.parent / workdir).resolve())

    return ClusterConfig.model_validate(data)
