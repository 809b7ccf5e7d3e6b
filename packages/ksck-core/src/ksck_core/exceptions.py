"""
Exception classes for check failures.

This module defines the exceptions raised by ksck checks:
- ClusterUnreachableError: No master could be reached (fatal for a run)
- KsckCheckError: Base class for failed check reports
- UnhealthyServersError: Masters or tablet servers are not healthy
- MasterConsensusError: Masters disagree about their own consensus config
- InconsistentTablesError: Tables have unhealthy tablets
- ChecksumScanError / ChecksumMismatchError / ChecksumTimeoutError:
  Checksum scan failures

Checks return report objects; these exceptions are raised by
raise_for_status() on those reports, or directly for fatal conditions.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class ClusterUnreachableError(Exception):
    """
    Raised when the cluster cannot be reached at all.

    This is the only fatal error of a check run: without a master nothing
    else can be fetched.

    Attributes:
        addresses: Master addresses that were tried
        reason: Why the connection failed
    """

    def __init__(self, addresses: list[str], reason: str) -> None:
        self.addresses = addresses
        self.reason = reason
        super().__init__(
            f"Unable to connect to cluster (masters: {', '.join(addresses)}): {reason}"
        )


class KsckCheckError(Exception):
    """Base class for a check that completed and found problems."""


class UnhealthyServersError(KsckCheckError):
    """
    Raised when some servers of a type are not healthy.

    Attributes:
        server_type: "master" or "tablet server"
        unhealthy: Number of unhealthy servers
        total: Number of servers checked
    """

    def __init__(self, server_type: str, unhealthy: int, total: int) -> None:
        self.server_type = server_type
        self.unhealthy = unhealthy
        self.total = total
        super().__init__(f"{unhealthy} of {total} {server_type}(s) are not healthy")


class MasterConsensusError(KsckCheckError):
    """
    Raised when masters disagree on their consensus state.

    Attributes:
        missing: Masters that did not report a consensus state
        conflicts: Pairs of master uuids whose states do not match
    """

    def __init__(
        self, missing: list[str], conflicts: list[tuple[str, str]]
    ) -> None:
        self.missing = missing
        self.conflicts = conflicts
        parts = []
        if missing:
            parts.append(f"{len(missing)} master(s) without consensus state")
        if conflicts:
            parts.append(f"{len(conflicts)} conflicting master pair(s)")
        super().__init__("Master consensus check failed: " + ", ".join(parts))


class InconsistentTablesError(KsckCheckError):
    """
    Raised when one or more tables have unhealthy tablets.

    Attributes:
        bad_tables: Names of tables that are not healthy
        unhealthy_tablets: Total number of unhealthy tablets
    """

    def __init__(self, bad_tables: list[str], unhealthy_tablets: int) -> None:
        self.bad_tables = bad_tables
        self.unhealthy_tablets = unhealthy_tablets
        super().__init__(
            f"{len(bad_tables)} table(s) are bad "
            f"({unhealthy_tablets} unhealthy tablet(s)): {', '.join(bad_tables)}"
        )


class ChecksumScanError(KsckCheckError):
    """
    Raised when checksum scans could not be run or failed.

    Attributes:
        errors: Number of replica scans that failed
    """

    def __init__(self, errors: int, reason: str | None = None) -> None:
        self.errors = errors
        self.reason = reason
        message = reason or f"{errors} error(s) were detected"
        super().__init__(f"Checksum scan failed: {message}")


class ChecksumMismatchError(KsckCheckError):
    """
    Raised when replicas of a tablet returned different checksums.

    Attributes:
        tablet_ids: Tablets whose replica checksums diverge
    """

    def __init__(self, tablet_ids: list[str]) -> None:
        self.tablet_ids = tablet_ids
        super().__init__(
            f"{len(tablet_ids)} checksum mismatch(es) were detected: "
            f"{', '.join(tablet_ids)}"
        )


class ChecksumTimeoutError(KsckCheckError):
    """
    Raised when checksum scans did not complete before the deadline.

    Attributes:
        timeout_seconds: The configured timeout
        outstanding: Replica scans still outstanding at the deadline
    """

    def __init__(self, timeout_seconds: float, outstanding: int) -> None:
        self.timeout_seconds = timeout_seconds
        self.outstanding = outstanding
        super().__init__(
            f"Checksum scan did not complete within the timeout of "
            f"{timeout_seconds:.1f}s ({outstanding} replica scan(s) outstanding)"
        )
