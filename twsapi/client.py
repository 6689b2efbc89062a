"""Blocking client facade over a gateway connection."""

import concurrent.futures
from concurrent.futures import Future
from typing import Any

from .config import ClientConfig
from .connection import ConnectionActor, ConnectionState
from .constants import MarketDataType, OutMsg
from .correlator import EventSink, StreamReply
from .messages import ACCOUNT_SUMMARY_REPLY, USER_INFO_REPLY
from .objects import AccountValue
from .registry import Message, MessageRegistry
from .session import NegotiatedSession


class Client:
    """Gateway client that connects, negotiates and issues requests.

    Every request method blocks the calling thread until the reply arrives,
    the timeout elapses, or the connection is lost.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        on_event: EventSink | None = None,
        registry: MessageRegistry | None = None,
        **overrides: Any,
    ):
        """Initialize client and connect.

        Args:
            config: Connection configuration, defaults to ClientConfig()
            on_event: Receives unsolicited messages on the connection thread
            registry: Message schemas, defaults to the built-in catalog
            **overrides: Config fields to override, e.g. host="10.0.0.5", port=4002

        Raises:
            OSError: If the gateway cannot be reached
            HandshakeFailed: If version negotiation fails
        """
        config = config or ClientConfig()
        if overrides:
            config = ClientConfig.model_validate({**config.model_dump(), **overrides})
        self.config = config
        self._actor = ConnectionActor(config, registry=registry, on_event=on_event)
        self._connect()

    def _connect(self) -> None:
        """Start the connection thread and wait for the handshake."""
        self._actor.open()

    # ------------------------------------------------------------------
    # Connection info
    # ------------------------------------------------------------------

    @property
    def session(self) -> NegotiatedSession:
        """Negotiated session of this connection."""
        return self._actor.wait_ready()

    @property
    def server_version(self) -> int:
        return self.session.server_version

    @property
    def connection_time(self) -> str:
        return self.session.connection_time

    @property
    def state(self) -> ConnectionState:
        return self._actor.state

    @property
    def is_connected(self) -> bool:
        return self._actor.state is ConnectionState.READY

    def wait_for_connection(self, timeout: float | None = None) -> None:
        """Return once the connection is ready."""
        self._actor.wait_ready(timeout)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def req_account_summary(
        self, group: str = "All", tags: str = "NetLiquidation", timeout: float | None = None
    ) -> list[AccountValue]:
        """Request a summary of account values, as in the Account Summary window.

        Args:
            group: Account group, "All" for every account
            tags: Comma separated account tags, e.g. "NetLiquidation,TotalCashValue"
            timeout: Seconds to wait, defaults to config.request_timeout

        Returns:
            One AccountValue per (account, tag), in the order first received

        Raises:
            TimeoutError: If the summary does not complete in time
            GatewayError: If the gateway rejects the request
            ConnectionLost: If the connection fails first
            UnsupportedFeatureError: If the server is too old for account summaries
        """
        request_id, future = self._actor.request(
            OutMsg.REQ_ACCOUNT_SUMMARY,
            {"group": group, "tags": tags},
            family=ACCOUNT_SUMMARY_REPLY,
            streaming=True,
            feature="acct_summary",
        )
        reply: StreamReply = self._wait(request_id, future, timeout)
        return [AccountValue.from_message(message) for message in reply.messages()]

    def cancel_account_summary(self, req_id: int) -> None:
        """Cancel an account summary subscription."""
        self._actor.send(OutMsg.CANCEL_ACCOUNT_SUMMARY, {"req_id": req_id}, feature="acct_summary").result()

    def req_market_data_type(self, market_data_type: MarketDataType | str | int) -> None:
        """Switch market data to live, frozen, delayed or delayed-frozen.

        Raises:
            InvalidFieldValueError: If market_data_type is not a MarketDataType value
            UnsupportedFeatureError: If the server is too old for this request
        """
        future = self._actor.send(
            OutMsg.REQ_MARKET_DATA_TYPE,
            {"market_data_type": market_data_type},
            feature="req_market_data_type",
        )
        future.result()

    def req_user_info(self, timeout: float | None = None) -> str:
        """Request the white branding id of the logged in user."""
        request_id, future = self._actor.request(
            OutMsg.REQ_USER_INFO, family=USER_INFO_REPLY, feature="user_info"
        )
        reply: Message = self._wait(request_id, future, timeout)
        return reply.get("white_branding_id", "")

    def _wait(self, request_id: int, future: Future, timeout: float | None) -> Any:
        if timeout is None:
            timeout = self.config.request_timeout
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            self._actor.abandon(request_id)
            raise TimeoutError(f"No reply to request {request_id} within {timeout} seconds") from None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the connection."""
        self._actor.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
