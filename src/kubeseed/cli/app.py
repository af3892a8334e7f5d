# src/kubeseed/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from kubeseed.bootstrap.installer import ClusterInstaller
from kubeseed.config.loader import load_config
from kubeseed.errors import KubeseedError
from kubeseed.files.checksum_sync import ChecksumFetcher, write_table
from kubeseed.logging.log import init_logging, redact
from kubeseed.observers.console import ConsoleObserver, LoggerObserver
from kubeseed.observers.dispatcher import EventBus
from kubeseed.observers.events import new_ctx


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="kubeseed: kubeadm cluster installer")
checksums_app = typer.Typer(help="Manage the binary checksum table")
app.add_typer(checksums_app, name="checksums")

ConfigOption = typer.Option(..., "-f", "--filename", help="Cluster definition YAML")
ZoneOption = typer.Option(None, "--zone", help="Region hint; 'cn' downloads from the mirror")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Print debug output")


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _start(config: Path, verbose: bool):
    logger, run_id, log_path = init_logging(verbose=verbose)

    typer.echo("")
    typer.secho("kubeseed", bold=True)
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo("")

    cfg = load_config(config)
    bus = EventBus(observers=[ConsoleObserver(), LoggerObserver(logger)])
    run_ctx = new_ctx(cluster=cfg.kubernetes.cluster_name, run_id=run_id)
    return logger, cfg, bus, run_ctx


def _fail(logger, exc: Exception) -> None:
    logger.debug("run failed", exc_info=True)
    typer.secho(f"Error: {redact(str(exc))}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def create(
    config: Path = ConfigOption,
    zone: Optional[str] = ZoneOption,
    skip_download: bool = typer.Option(False, "--skip-download", help="Use binaries already downloaded"),
    skip_os_prep: bool = typer.Option(False, "--skip-os-prep", help="Do not run OS preparation"),
    verbose: bool = VerboseOption,
):
    """Provision binaries, prepare hosts and bootstrap the cluster."""
    logger, cfg, bus, run_ctx = _start(config, verbose)
    try:
        report = ClusterInstaller(cfg, zone=zone, bus=bus, run_ctx=run_ctx).create(
            skip_download=skip_download, skip_os_prep=skip_os_prep
        )
    except KubeseedError as e:
        _fail(logger, e)

    typer.secho("Cluster ready", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  {report.summary()}")
    typer.echo(f"  kubeconfig: {report.kubeconfig_path}")


@app.command()
def download(
    config: Path = ConfigOption,
    zone: Optional[str] = ZoneOption,
    verbose: bool = VerboseOption,
):
    """Download and verify the binaries only."""
    logger, cfg, bus, run_ctx = _start(config, verbose)
    try:
        report = ClusterInstaller(cfg, zone=zone, bus=bus, run_ctx=run_ctx).provision()
    except KubeseedError as e:
        _fail(logger, e)

    typer.echo(report.summary())


@app.command()
def status(
    config: Path = ConfigOption,
    verbose: bool = VerboseOption,
):
    """Report whether the first master already runs a control plane."""
    logger, cfg, bus, run_ctx = _start(config, verbose)
    try:
        snap = ClusterInstaller(cfg, bus=bus, run_ctx=run_ctx).status()
    except KubeseedError as e:
        _fail(logger, e)

    typer.echo(f"exists:  {snap.exists}")
    typer.echo(f"version: {snap.control_plane_version or '-'}")


@checksums_app.command("fetch")
def checksums_fetch(
    config: Path = ConfigOption,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Defaults to <workdir>/checksums.yaml"),
    verbose: bool = VerboseOption,
):
    """Fetch upstream SHA-256 digests for the configured versions."""
    logger, cfg, _, _ = _start(config, verbose)
    target = output or Path(cfg.workdir) / "checksums.yaml"
    try:
        table = ChecksumFetcher().fetch(
            cfg.kubernetes.version,
            cfg.architectures(),
            cni_version=cfg.cni_version,
            helm_version=cfg.helm_version,
        )
        write_table(table, target)
    except KubeseedError as e:
        _fail(logger, e)

    typer.echo(f"checksums written to {target}")


if __name__ == "__main__":
    app()
