"""
Admin API clients for masters and tablet servers.

This module provides RemoteMaster and RemoteTabletServer, which implement
MasterProtocol and TabletServerProtocol over a node's JSON admin API.

Each node receives an injected httpx.AsyncClient with base_url set to the
node. Transport errors, HTTP error statuses and malformed responses are
all raised as FetchError so that a failing node is reported as
unavailable instead of aborting the check run.
"""

import logging
from typing import TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ksck_protocols import (
    DUMMY_UUID,
    ChecksumOptions,
    ChecksumProgressCallbacks,
    ConsensusConfigType,
    ConsensusState,
    FetchError,
    FetchState,
    NodeFetchState,
    Schema,
    TabletConsensusStateMap,
    TabletDataState,
    TabletState,
    TabletStatus,
    TabletStatusMap,
    WrongServerUuidError,
)
from ksck_remote.types import (
    ChecksumScanResponse,
    ConsensusStateResponse,
    HostedTabletsResponse,
    MasterStatusResponse,
    MemberType,
    RaftConfig,
    TabletServerStatusResponse,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


def path_segment(value: str) -> str:
    """Escape a name or id for use as one URL path segment."""
    return quote(value, safe="")


async def request_model(
    http: httpx.AsyncClient,
    method: str,
    path: str,
    model: type[ResponseT],
    json: dict | None = None,
) -> ResponseT:
    """
    Send a request and parse the response into a Pydantic model.

    Args:
        http: Client with base_url set to the node.
        method: HTTP method.
        path: Request path.
        model: Response model class.
        json: Optional JSON request body.

    Returns:
        The parsed response.

    Raises:
        FetchError: On transport errors, 4xx/5xx responses or malformed data.
    """
    address = str(http.base_url).rstrip("/")
    try:
        response = await http.request(method, path, json=json)
        response.raise_for_status()
        return model.model_validate(response.json())
    except httpx.HTTPStatusError as e:
        raise FetchError(
            address, f"{method} {path} returned {e.response.status_code}"
        ) from e
    except httpx.HTTPError as e:
        raise FetchError(address, f"{method} {path} failed: {e!r}") from e
    except (ValidationError, ValueError) as e:
        raise FetchError(address, f"malformed response to {method} {path}: {e}") from e


def consensus_state_from_response(cstate: ConsensusStateResponse) -> ConsensusState:
    """
    Convert a reported consensus state to a ConsensusState.

    A pending config, when present, takes precedence over the committed
    one and is reported as PENDING.
    """
    if cstate.pending_config is not None:
        config_type = ConsensusConfigType.PENDING
        config: RaftConfig = cstate.pending_config
    else:
        config_type = ConsensusConfigType.COMMITTED
        config = cstate.committed_config
    return ConsensusState(
        config_type=config_type,
        term=cstate.current_term,
        opid_index=config.opid_index,
        leader_uuid=cstate.leader_uuid or None,
        voter_uuids=frozenset(
            p.permanent_uuid for p in config.peers if p.member_type == MemberType.VOTER
        ),
        non_voter_uuids=frozenset(
            p.permanent_uuid
            for p in config.peers
            if p.member_type == MemberType.NON_VOTER
        ),
    )


def _parse_enum(enum_cls, value: str):
    try:
        return enum_cls(value.upper())
    except ValueError:
        return enum_cls.UNKNOWN


class RemoteMaster:
    """
    Master reached over its admin API.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the master.
        role: Raft role reported by the last successful fetch_info().

    Example:
        async with httpx.AsyncClient(base_url="http://master-1:8051") as http:
            master = RemoteMaster("master-1:8051", http)
            await master.init()
            await master.fetch_info()
            print(master.uuid, master.role)
    """

    def __init__(self, address: str, http: httpx.AsyncClient) -> None:
        self._address = address
        self.http = http
        self._uuid = f"{DUMMY_UUID} ({address})"
        self._fetch = NodeFetchState()
        self._cstate: ConsensusState | None = None
        self.role: str | None = None

    @property
    def address(self) -> str:
        return self._address

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def state(self) -> FetchState:
        return self._fetch.state

    @property
    def cstate(self) -> ConsensusState | None:
        return self._cstate

    def is_healthy(self) -> bool:
        return self._fetch.is_healthy()

    async def init(self) -> None:
        # Clients are created up front by the factory.
        logger.debug("Using admin API of master %s at %s", self._address, self.http.base_url)

    async def _status(self) -> MasterStatusResponse:
        return await request_model(self.http, "GET", "/api/v1/status", MasterStatusResponse)

    async def fetch_info(self) -> None:
        self._fetch.reset()
        try:
            status = await self._status()
        except FetchError:
            self._fetch.mark_failed()
            raise
        self._uuid = status.uuid
        self.role = status.role
        self._fetch.mark_fetched()

    async def fetch_consensus_state(self) -> None:
        self._cstate = None
        status = await self._status()
        if status.consensus_state is not None:
            self._cstate = consensus_state_from_response(status.consensus_state)


class RemoteTabletServer:
    """
    Tablet server reached over its admin API.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to the
            tablet server.
    """

    def __init__(self, uuid: str, address: str, http: httpx.AsyncClient) -> None:
        self._uuid = uuid
        self._address = address
        self.http = http
        self._fetch = NodeFetchState()
        self._tablet_status_map: TabletStatusMap = {}
        self._tablet_consensus_state_map: TabletConsensusStateMap = {}
        self._timestamp = 0

    @property
    def uuid(self) -> str:
        return self._uuid

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> FetchState:
        return self._fetch.state

    @property
    def tablet_status_map(self) -> TabletStatusMap:
        self._fetch.require_fetched("tablet status map")
        return self._tablet_status_map

    @property
    def tablet_consensus_state_map(self) -> TabletConsensusStateMap:
        self._fetch.require_fetched("tablet consensus state map")
        return self._tablet_consensus_state_map

    @property
    def current_timestamp(self) -> int:
        self._fetch.require_fetched("current timestamp")
        return self._timestamp

    def is_healthy(self) -> bool:
        return self._fetch.is_healthy()

    def replica_state(self, tablet_id: str) -> TabletState:
        status = self.tablet_status_map.get(tablet_id)
        return status.state if status else TabletState.UNKNOWN

    async def _hosted_tablets(self) -> HostedTabletsResponse:
        return await request_model(self.http, "GET", "/api/v1/tablets", HostedTabletsResponse)

    async def fetch_info(self) -> None:
        """
        Fetch the server's uuid, current timestamp and hosted tablets.

        Raises:
            WrongServerUuidError: If the server reports a different uuid
                than it is registered under with the master.
            FetchError: On any other failure.
        """
        self._fetch.reset()
        try:
            status = await request_model(
                self.http, "GET", "/api/v1/status", TabletServerStatusResponse
            )
            if status.uuid != self._uuid:
                raise WrongServerUuidError(self._address, self._uuid, status.uuid)
            hosted = await self._hosted_tablets()
        except FetchError:
            self._fetch.mark_failed()
            raise

        self._timestamp = status.timestamp
        self._tablet_status_map = {
            t.tablet_id: TabletStatus(
                tablet_id=t.tablet_id,
                table_name=t.table_name,
                state=_parse_enum(TabletState, t.state),
                data_state=_parse_enum(TabletDataState, t.data_state),
            )
            for t in hosted.tablets
        }
        self._set_consensus_states(hosted)
        self._fetch.mark_fetched()

    async def fetch_consensus_state(self) -> None:
        """
        Fetch the consensus state of every hosted replica.

        fetch_info() records the consensus states from the same listing as
        the tablet statuses, so a fetched server is not asked again.
        """
        if self._fetch.state == FetchState.FETCHED:
            return
        try:
            hosted = await self._hosted_tablets()
        except FetchError:
            self._fetch.mark_failed()
            raise
        self._set_consensus_states(hosted)

    def _set_consensus_states(self, hosted: HostedTabletsResponse) -> None:
        self._tablet_consensus_state_map = {
            (self._uuid, t.tablet_id): consensus_state_from_response(t.consensus_state)
            for t in hosted.tablets
            if t.consensus_state is not None
        }

    async def run_tablet_checksum_scan(
        self,
        tablet_id: str,
        schema: Schema,
        options: ChecksumOptions,
        callbacks: ChecksumProgressCallbacks,
    ) -> None:
        """
        Checksum one replica by driving a server-side scanner to completion.

        Starts the scan, then continues it until the server reports no more
        data. Progress is reported as deltas of the cumulative counters.
        A failure is reported through callbacks.finished() rather than
        raised; cancellation propagates without calling it.
        """
        body = {
            "columns": schema.column_names,
            "snapshot_timestamp": options.snapshot_timestamp if options.use_snapshot else None,
        }
        rows = 0
        disk_bytes = 0
        try:
            response = await request_model(
                self.http,
                "POST",
                f"/api/v1/tablets/{path_segment(tablet_id)}/checksum",
                ChecksumScanResponse,
                json=body,
            )
            while True:
                callbacks.progress(
                    response.rows_summed - rows, response.disk_bytes_summed - disk_bytes
                )
                rows = response.rows_summed
                disk_bytes = response.disk_bytes_summed
                if not response.has_more:
                    break
                response = await request_model(
                    self.http,
                    "POST",
                    f"/api/v1/checksum-scans/{path_segment(response.scanner_id)}/continue",
                    ChecksumScanResponse,
                )
        except FetchError as e:
            callbacks.finished(e, 0)
            return
        callbacks.finished(None, response.checksum)
