"""
Fetch-related exception classes shared by every node implementation.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class FetchError(Exception):
    """
    Raised when information could not be fetched from a server.

    Covers connection failures, timeouts, RPC errors and malformed
    responses. A failed fetch marks the server unavailable but never
    aborts a check run.

    Attributes:
        address: Address of the server that was contacted
        reason: What went wrong
    """

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to fetch from {address}: {reason}")


class WrongServerUuidError(FetchError):
    """
    Raised when a server answered with a different UUID than expected.

    Attributes:
        expected_uuid: UUID the server was registered under
        reported_uuid: UUID the server reported about itself
    """

    def __init__(self, address: str, expected_uuid: str, reported_uuid: str) -> None:
        self.expected_uuid = expected_uuid
        self.reported_uuid = reported_uuid
        super().__init__(
            address,
            f"ID reported by server ({reported_uuid}) doesn't match "
            f"the expected ID: {expected_uuid}",
        )


class NotFetchedError(RuntimeError):
    """Raised when snapshot data is read before it was successfully fetched."""
