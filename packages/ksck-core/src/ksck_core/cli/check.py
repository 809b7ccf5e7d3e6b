"""Check CLI command.

This module provides the CLI command for running a full system check:
masters, tablet servers, tables and, optionally, data checksums.

- Use envvar parameter for environment variable fallback
- Uses factory pattern for cluster creation (no direct remote imports)
- Exits with status 1 if any check failed
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ksck_protocols import ChecksumOptions
from ksck_core.cli.cluster_factory import AVAILABLE_CLUSTERS, open_cluster
from ksck_core.config import (
    DEFAULT_REQUEST_TIMEOUT,
    MASTERS_ENVVAR,
    TIMEOUT_ENVVAR,
    KsckConfig,
    parse_list,
)
from ksck_core.exceptions import ClusterUnreachableError
from ksck_core.ksck import Ksck
from ksck_core.reporting import render_results
from ksck_core.reports import KsckResults

check_app = typer.Typer(help="Check the health and consistency of a cluster")

console = Console()
err_console = Console(stderr=True)

DEMO_MASTERS = ["demo-master:7051"]


def setup_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@check_app.callback(invoke_without_command=True)
def run_check(
    masters: Optional[list[str]] = typer.Option(
        None,
        "--master",
        "-m",
        envvar=MASTERS_ENVVAR,
        help="Master address (host:port); repeat or comma-separate for several",
    ),
    cluster_kind: str = typer.Option(
        "remote",
        "--cluster",
        help=f"Cluster kind ({', '.join(AVAILABLE_CLUSTERS)})",
    ),
    tables: Optional[list[str]] = typer.Option(
        None, "--tables", "-t", help="Glob patterns of tables to check"
    ),
    tablets: Optional[list[str]] = typer.Option(
        None, "--tablets", help="Ids of tablets to check"
    ),
    check_replica_count: bool = typer.Option(
        True,
        "--check-replica-count/--no-check-replica-count",
        help="Report tablets with fewer running replicas than the replication factor",
    ),
    checksum_scan: bool = typer.Option(
        False, "--checksum-scan", help="Compare data checksums of every replica"
    ),
    checksum_timeout: float = typer.Option(
        3600.0, "--checksum-timeout", help="Seconds to wait for all checksum scans"
    ),
    checksum_concurrency: int = typer.Option(
        4, "--checksum-concurrency", help="Concurrent checksum scans per tablet server"
    ),
    checksum_snapshot: bool = typer.Option(
        True,
        "--checksum-snapshot/--no-checksum-snapshot",
        help="Scan every replica at the same snapshot",
    ),
    snapshot_timestamp: int = typer.Option(
        0,
        "--snapshot-timestamp",
        help="Snapshot timestamp for checksum scans (0 uses the current time)",
    ),
    timeout: float = typer.Option(
        DEFAULT_REQUEST_TIMEOUT,
        "--timeout",
        envvar=TIMEOUT_ENVVAR,
        help="Seconds before an admin API request fails",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug details"),
) -> None:
    """
    Run a full system check.

    Checks master health and consensus, connects to the leader master,
    checks every tablet server and every tablet of the selected tables,
    and optionally compares replica data checksums.

    Environment variables:
        KSCK_MASTERS: Comma-separated master addresses
        KSCK_TIMEOUT: Admin API request timeout in seconds
    """
    setup_logging(verbose)

    if cluster_kind not in AVAILABLE_CLUSTERS:
        err_console.print(
            f"[red]Error:[/red] Unknown cluster kind '{cluster_kind}'. "
            f"Available: {', '.join(AVAILABLE_CLUSTERS)}"
        )
        raise typer.Exit(2)

    master_addresses = parse_list(masters)
    if not master_addresses and cluster_kind == "demo":
        master_addresses = list(DEMO_MASTERS)

    try:
        config = KsckConfig(
            master_addresses=master_addresses,
            table_filters=parse_list(tables),
            tablet_id_filters=parse_list(tablets),
            check_replica_count=check_replica_count,
            request_timeout=timeout,
            checksum_scan=checksum_scan,
            checksum_options=ChecksumOptions(
                timeout_seconds=checksum_timeout,
                scan_concurrency=checksum_concurrency,
                use_snapshot=checksum_snapshot,
                snapshot_timestamp=snapshot_timestamp,
            ),
        )
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2)

    async def _run() -> KsckResults:
        async with open_cluster(cluster_kind, config) as cluster:
            ksck = Ksck(cluster, **config.ksck_kwargs())
            return await ksck.run(
                checksum_options=config.checksum_options if config.checksum_scan else None
            )

    try:
        results = asyncio.run(_run())
    except ClusterUnreachableError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    render_results(console, results)
    if not results.ok:
        raise typer.Exit(1)
