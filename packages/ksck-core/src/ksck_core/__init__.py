"""
ksck Core Library

Check engine for replicated tablet storage clusters. This package provides:

- Ksck: Orchestrates the master, tablet server, table and checksum checks
- TabletVerifier: Classifies each tablet from its replicas' reported state
- ChecksumScanner: Runs replica checksum scans concurrently and compares them
- Reports: Structured results with ok / raise_for_status()
- In-memory cluster: ClusterProtocol implementation for tests and demos
- CLI infrastructure: Typer-based command structure
"""

__version__ = "0.1.0"

from ksck_core.checksum import (
    ChecksumReport,
    ChecksumResultReporter,
    ChecksumScanner,
    ReplicaChecksum,
    TabletChecksumResult,
)
from ksck_core.config import KsckConfig
from ksck_core.exceptions import (
    ChecksumMismatchError,
    ChecksumScanError,
    ChecksumTimeoutError,
    ClusterUnreachableError,
    InconsistentTablesError,
    KsckCheckError,
    MasterConsensusError,
    UnhealthyServersError,
)
from ksck_core.filters import KsckFilters
from ksck_core.health import (
    ServerHealth,
    ServerHealthSummary,
    classify_server_health,
    server_health_score,
    worst_server_health,
)
from ksck_core.ksck import Ksck
from ksck_core.reports import (
    KsckResults,
    MasterConsensusReport,
    ServerHealthReport,
    TablesConsistencyReport,
    TableVerification,
)
from ksck_core.types import (
    CheckResult,
    ReplicaInfo,
    TableSummary,
    TabletVerification,
    check_result_score,
)
from ksck_core.verifier import TabletVerifier, majority_size

__all__ = [
    "__version__",
    # Orchestration
    "Ksck",
    "KsckConfig",
    "KsckFilters",
    # Server health
    "ServerHealth",
    "ServerHealthSummary",
    "classify_server_health",
    "server_health_score",
    "worst_server_health",
    # Tablet and table health
    "CheckResult",
    "check_result_score",
    "ReplicaInfo",
    "TabletVerification",
    "TableSummary",
    "TabletVerifier",
    "majority_size",
    # Checksums
    "ChecksumScanner",
    "ChecksumResultReporter",
    "ChecksumReport",
    "ReplicaChecksum",
    "TabletChecksumResult",
    # Reports
    "KsckResults",
    "ServerHealthReport",
    "MasterConsensusReport",
    "TablesConsistencyReport",
    "TableVerification",
    # Exceptions
    "ClusterUnreachableError",
    "KsckCheckError",
    "UnhealthyServersError",
    "MasterConsensusError",
    "InconsistentTablesError",
    "ChecksumScanError",
    "ChecksumMismatchError",
    "ChecksumTimeoutError",
]
