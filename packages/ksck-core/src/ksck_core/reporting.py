"""
Rich rendering of ksck reports.

Each render_* function prints one report to a rich Console:
- Server health as a table with color-coded health
- Master consensus states and conflicts
- Per-table tablet counts and overall table status
- Checksum results, mismatches and failures

Color conventions follow the health indicators used elsewhere:
green for healthy, yellow for transient or degraded, red for faults.
"""

from rich.console import Console
from rich.table import Table

from ksck_core.checksum import ChecksumReport
from ksck_core.health import ServerHealth
from ksck_core.reports import (
    KsckResults,
    MasterConsensusReport,
    ServerHealthReport,
    TablesConsistencyReport,
)
from ksck_core.types import CheckResult

HEALTH_STYLES = {
    ServerHealth.HEALTHY: "green",
    ServerHealth.WRONG_SERVER_UUID: "yellow",
    ServerHealth.UNAVAILABLE: "red",
}

RESULT_STYLES = {
    CheckResult.HEALTHY: "green",
    CheckResult.RECOVERING: "yellow",
    CheckResult.UNDER_REPLICATED: "yellow",
    CheckResult.CONSENSUS_MISMATCH: "red",
    CheckResult.UNAVAILABLE: "red",
}


def format_health(health: ServerHealth) -> str:
    style = HEALTH_STYLES[health]
    return f"[{style}]{health.value}[/{style}]"


def format_result(result: CheckResult) -> str:
    style = RESULT_STYLES[result]
    return f"[{style}]{result.value}[/{style}]"


def format_ok(ok: bool) -> str:
    return "[green]OK[/green]" if ok else "[red]FAILED[/red]"


def render_server_health(console: Console, report: ServerHealthReport) -> None:
    table = Table(title=f"{report.server_type.title()} Summary")
    table.add_column("UUID")
    table.add_column("Address")
    table.add_column("Status")
    for summary in report.summaries:
        table.add_row(summary.uuid, summary.address, format_health(summary.health))
    console.print(table)
    for summary in report.unhealthy:
        console.print(f"[red]ERROR:[/red] {summary.address}: {summary.error}")


def render_master_consensus(console: Console, report: MasterConsensusReport) -> None:
    table = Table(title="Master Consensus")
    table.add_column("Master")
    table.add_column("Consensus state")
    for uuid, description in report.cstates.items():
        table.add_row(uuid, description or "[red]missing[/red]")
    console.print(table)
    for uuid_a, uuid_b in report.conflicts:
        console.print(f"[red]ERROR:[/red] masters {uuid_a} and {uuid_b} disagree")


def render_tables(console: Console, report: TablesConsistencyReport) -> None:
    if not report.table_summaries:
        console.print("[yellow]WARNING:[/yellow] no tables matched the filters")
        return
    for summary in report.table_summaries:
        if summary.fetch_error is not None:
            console.print(
                f"[red]ERROR:[/red] unable to list tablets of table '{summary.name}': "
                f"{summary.fetch_error}"
            )
        for tablet in summary.tablets:
            if tablet.result == CheckResult.HEALTHY:
                continue
            console.print(f"[yellow]WARNING:[/yellow] {tablet.messages[0]}")
            for detail in tablet.messages[1:]:
                console.print(f"  {detail}")

    table = Table(title="Table Summary")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Total Tablets", justify="right")
    table.add_column("Healthy", justify="right")
    table.add_column("Recovering", justify="right")
    table.add_column("Under-replicated", justify="right")
    table.add_column("Consensus Mismatch", justify="right")
    table.add_column("Unavailable", justify="right")
    for summary in sorted(report.table_summaries, key=lambda s: s.name):
        table.add_row(
            summary.name,
            format_result(summary.table_status()),
            str(summary.total_tablets),
            str(summary.healthy_tablets),
            str(summary.recovering_tablets),
            str(summary.underreplicated_tablets),
            str(summary.consensus_mismatch_tablets),
            str(summary.unavailable_tablets),
        )
    console.print(table)


def render_checksum(console: Console, report: ChecksumReport) -> None:
    if report.error:
        console.print(f"[red]ERROR:[/red] checksum scan failed: {report.error}")
        return

    table = Table(title="Checksum Summary")
    table.add_column("Table")
    table.add_column("Tablet")
    table.add_column("Replica")
    table.add_column("Checksum")
    for tablet in sorted(report.tablets, key=lambda t: (t.table_name, t.tablet_id)):
        for uuid, replica in sorted(tablet.replicas.items()):
            if replica is None:
                value = "[yellow]outstanding[/yellow]"
            elif replica.ok:
                style = "red" if tablet.mismatch else "green"
                value = f"[{style}]{replica.checksum}[/{style}]"
            else:
                value = f"[red]{replica.error}[/red]"
            table.add_row(tablet.table_name, tablet.tablet_id, uuid, value)
    console.print(table)

    if report.snapshot_timestamp is not None:
        console.print(f"Snapshot timestamp: {report.snapshot_timestamp}")
    console.print(
        f"{report.rows_summed} rows summed, {report.disk_bytes_summed} bytes read"
    )
    if report.timed_out:
        console.print(
            f"[red]ERROR:[/red] timed out after {report.timeout_seconds:.1f}s with "
            f"{report.num_outstanding} replica scan(s) outstanding"
        )
    for mismatch in report.mismatches:
        console.print(
            f"[red]ERROR:[/red] checksum mismatch for tablet {mismatch.tablet_id} "
            f"of table '{mismatch.table_name}'"
        )


def render_results(console: Console, results: KsckResults) -> None:
    """Render every report of a run followed by a one-line verdict each."""
    if results.master_health is not None:
        render_server_health(console, results.master_health)
    if results.master_consensus is not None:
        render_master_consensus(console, results.master_consensus)
    if results.tablet_server_health is not None:
        render_server_health(console, results.tablet_server_health)
    if results.tables is not None:
        render_tables(console, results.tables)
    if results.checksum is not None:
        render_checksum(console, results.checksum)

    console.print()
    verdicts = [
        ("Master health", results.master_health),
        ("Master consensus", results.master_consensus),
        ("Tablet server health", results.tablet_server_health),
        ("Table consistency", results.tables),
        ("Checksum scan", results.checksum),
    ]
    for name, report in verdicts:
        if report is not None:
            console.print(f"{name}: {format_ok(report.ok)}")
