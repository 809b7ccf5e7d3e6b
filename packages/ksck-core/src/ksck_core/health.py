"""
Server health classification.

Turns the outcome of a fetch attempt into a ServerHealth verdict and
provides an explicit unhealthiness ranking used to summarize a set of
servers (e.g. to pick the worst status for display grouping).
"""

from dataclasses import dataclass
from enum import Enum

from ksck_protocols import WrongServerUuidError


class ServerHealth(Enum):
    """Health status of a master or tablet server."""

    # The server is healthy.
    HEALTHY = "HEALTHY"
    # The server couldn't be connected to.
    UNAVAILABLE = "UNAVAILABLE"
    # The server reported an unexpected UUID.
    WRONG_SERVER_UUID = "WRONG_SERVER_UUID"


_HEALTH_SCORES = {
    ServerHealth.HEALTHY: 0,
    ServerHealth.WRONG_SERVER_UUID: 1,
    ServerHealth.UNAVAILABLE: 2,
}


def server_health_score(health: ServerHealth) -> int:
    """Return the unhealthiness level of a health status. Higher is worse."""
    return _HEALTH_SCORES[health]


def worst_server_health(healths: list[ServerHealth]) -> ServerHealth:
    """Pick the least healthy status; HEALTHY for an empty list."""
    return max(healths, key=server_health_score, default=ServerHealth.HEALTHY)


def classify_server_health(
    error: BaseException | None,
    expected_uuid: str | None = None,
    reported_uuid: str | None = None,
) -> ServerHealth:
    """
    Classify the outcome of a fetch attempt.

    Args:
        error: The exception raised by the fetch, or None if it succeeded.
        expected_uuid: UUID the server was registered under, if checked.
        reported_uuid: UUID the server reported about itself, if known.

    Returns:
        WRONG_SERVER_UUID if the server identified itself with an unexpected
        UUID, UNAVAILABLE for any other fetch failure, HEALTHY otherwise.
    """
    if isinstance(error, WrongServerUuidError):
        return ServerHealth.WRONG_SERVER_UUID
    if error is not None:
        return ServerHealth.UNAVAILABLE
    if (
        expected_uuid is not None
        and reported_uuid is not None
        and expected_uuid != reported_uuid
    ):
        return ServerHealth.WRONG_SERVER_UUID
    return ServerHealth.HEALTHY


@dataclass
class ServerHealthSummary:
    """
    Summarizes the result of a server health check.

    Attributes:
        uuid: Server uuid (a placeholder for masters never fetched)
        address: Server address
        health: Classified health
        error: Description of the fetch failure, if any
    """

    uuid: str
    address: str
    health: ServerHealth
    error: str | None = None
