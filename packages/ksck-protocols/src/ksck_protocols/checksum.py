"""
Checksum scan options and progress callback protocol.

ChecksumOptions configures a checksum run across all replicas.
ChecksumProgressCallbacks is the interface a tablet server scan uses to
report incremental progress and its final outcome.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


CURRENT_TIMESTAMP = 0
"""Snapshot timestamp sentinel meaning "use the current time"."""


@dataclass(frozen=True)
class ChecksumOptions:
    """
    Options for checksum scans.

    Attributes:
        timeout_seconds: Maximum total time to wait for results from all
            replicas.
        scan_concurrency: Maximum number of concurrent checksum scans to
            run per tablet server.
        use_snapshot: Whether to scan at a consistent snapshot.
        snapshot_timestamp: Snapshot timestamp to scan at, or
            CURRENT_TIMESTAMP to use the current time of the cluster.
    """

    timeout_seconds: float = 3600.0
    scan_concurrency: int = 4
    use_snapshot: bool = True
    snapshot_timestamp: int = CURRENT_TIMESTAMP

    def __post_init__(self) -> None:
        if self.scan_concurrency < 1:
            raise ValueError(
                f"scan_concurrency must be at least 1, got {self.scan_concurrency}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be positive, got {self.timeout_seconds}"
            )
        if self.snapshot_timestamp < 0:
            raise ValueError("snapshot_timestamp cannot be negative")


@runtime_checkable
class ChecksumProgressCallbacks(Protocol):
    """
    Progress reporting for checksumming a single replica.

    Implementations must be thread-safe and must not block: a scan may
    invoke them from any thread, concurrently with other scans.
    """

    def progress(self, delta_rows_summed: int, delta_disk_bytes_summed: int) -> None:
        """
        Report incremental progress from the server side.

        delta_disk_bytes_summed only counts data read from disk.
        """
        ...

    def finished(self, error: Exception | None, checksum: int) -> None:
        """
        Report that the scan of the replica is complete.

        Args:
            error: None on success, otherwise the failure.
            checksum: The replica checksum; meaningless if error is set.
        """
        ...
