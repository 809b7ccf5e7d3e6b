"""
Configuration for a ksck run.

KsckConfig gathers everything a run needs: where the masters are, what
to check and how to run checksum scans. The CLI builds it from options
and environment variables; library users construct it directly.

Example:
    config = KsckConfig(
        master_addresses=["master-1:8051", "master-2:8051"],
        table_filters=["orders*"],
        checksum_scan=True,
        checksum_options=ChecksumOptions(timeout_seconds=600),
    )
    ksck = Ksck(cluster, **config.ksck_kwargs())
"""

from dataclasses import dataclass, field

from ksck_protocols import ChecksumOptions

from ksck_core.filters import KsckFilters

# Environment variables read by the CLI
MASTERS_ENVVAR = "KSCK_MASTERS"
TIMEOUT_ENVVAR = "KSCK_TIMEOUT"

DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_PROGRESS_INTERVAL = 5.0


def parse_list(values: list[str] | str | None) -> list[str]:
    """
    Flatten comma-separated values into a list.

    Accepts repeated options ("--master a --master b"), a single
    comma-separated string ("a,b") or any mix of both.
    """
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    return [item.strip() for value in values for item in value.split(",") if item.strip()]


@dataclass
class KsckConfig:
    """
    Configuration of a ksck run.

    Attributes:
        master_addresses: Addresses ("host:port") of every master.
        table_filters: Glob patterns of tables to check; empty checks all.
        tablet_id_filters: Tablet ids to check; empty checks all.
        check_replica_count: Report tablets with fewer running voters than
            the replication factor as under-replicated.
        request_timeout: Seconds before an admin API request fails.
        checksum_scan: Whether to run checksum scans.
        checksum_options: Options for checksum scans.
        progress_interval: Seconds between checksum progress log lines.
    """

    master_addresses: list[str]
    table_filters: list[str] = field(default_factory=list)
    tablet_id_filters: list[str] = field(default_factory=list)
    check_replica_count: bool = True
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    checksum_scan: bool = False
    checksum_options: ChecksumOptions = field(default_factory=ChecksumOptions)
    progress_interval: float = DEFAULT_PROGRESS_INTERVAL

    def __post_init__(self) -> None:
        if not self.master_addresses:
            raise ValueError("at least one master address is required")
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def filters(self) -> KsckFilters:
        return KsckFilters(
            table_filters=list(self.table_filters),
            tablet_id_filters=list(self.tablet_id_filters),
        )

    def ksck_kwargs(self) -> dict:
        """Keyword arguments for constructing a Ksck from this config."""
        return {
            "check_replica_count": self.check_replica_count,
            "filters": self.filters,
            "progress_interval": self.progress_interval,
        }
