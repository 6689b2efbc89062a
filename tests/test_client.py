"""End-to-end tests against the fake gateway."""

import threading
import time

import pytest
from pydantic import ValidationError

from twsapi import (
    Client,
    ClientConfig,
    ConnectionLost,
    ConnectionState,
    GatewayError,
    GatewayNotice,
    HandshakeFailed,
    InMsg,
    InvalidFieldValueError,
    MarketDataType,
    OutMsg,
    FieldType,
    ReplyFamily,
    UnknownMessageTypeError,
    UnsupportedFeatureError,
    frame,
)
from twsapi.constants import NO_REQUEST_ID
from twsapi.frames import make_payload
from twsapi.messages import USER_INFO_REPLY, build_registry
from twsapi.registry import FieldSpec, MessageSchema
from twsapi.testing import FakeGateway


def encoded(*fields) -> bytes:
    return frame(make_payload([str(field).encode() for field in fields]))


def wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_connect_and_start_api(gateway, connect) -> None:
    """Connecting negotiates the version and sends START_API."""
    client = connect(client_id=12, opt_capabilities="+PACEAPI")

    assert client.server_version == 176
    assert client.connection_time == "20240101 10:00:00"
    assert client.state is ConnectionState.READY
    assert gateway.hellos == ["v100..176"]
    assert gateway.wait_for_message(OutMsg.START_API) == ["71", "2", "12", "+PACEAPI"]
    print("✓ Handshake and START_API test passed")


def test_old_server_gets_old_start_api() -> None:
    """Servers before optional capabilities receive the short START_API."""
    with FakeGateway(server_version=60) as gateway:
        config = ClientConfig(port=gateway.port, min_client_version=38, client_id=3, opt_capabilities="x")
        with Client(config) as client:
            assert client.server_version == 60
            assert gateway.wait_for_message(OutMsg.START_API) == ["71", "2", "3"]

            # user info needs server version 166
            with pytest.raises(UnsupportedFeatureError) as excinfo:
                client.req_user_info()
            assert excinfo.value.required == 166
            assert excinfo.value.negotiated == 60
    assert not any(fields[0] == str(int(OutMsg.REQ_USER_INFO)) for fields in gateway.received)


def test_handshake_discards_preamble() -> None:
    """A three-field message before the version reply is skipped."""
    with FakeGateway(preamble=[[InMsg.ERR_MSG, 2, -1]]) as gateway:
        with Client(port=gateway.port, handshake_timeout=2.0) as client:
            assert client.server_version == 176


def test_handshake_failure_never_reaches_ready() -> None:
    """A gateway that hangs up after the hello fails the connection."""
    with FakeGateway(handshake=False) as gateway:
        with pytest.raises(HandshakeFailed):
            Client(port=gateway.port, handshake_timeout=2.0)


def test_account_summary(gateway, connect) -> None:
    """A streaming request collects every partial until the end message."""
    client = connect()
    values = client.req_account_summary("All", "NetLiquidation,TotalCashValue,AccountType", timeout=2.0)

    assert [(v.account, v.tag, v.value, v.currency) for v in values] == [
        ("DU123456", "NetLiquidation", "100000.00", "USD"),
        ("DU123456", "TotalCashValue", "25000.00", "USD"),
        ("DU123456", "AccountType", "INDIVIDUAL", ""),
    ]
    assert values[0].as_float() == 100000.0
    assert values[2].as_float() is None

    request = gateway.wait_for_message(OutMsg.REQ_ACCOUNT_SUMMARY)
    assert request[1:] == ["1", request[2], "All", "NetLiquidation,TotalCashValue,AccountType"]
    print("✓ Account summary test passed")


def test_request_ids_increase(gateway, connect) -> None:
    """Back-to-back requests get distinct, increasing ids."""
    client = connect()
    client.req_user_info(timeout=2.0)
    client.req_account_summary(timeout=2.0)
    client.req_user_info(timeout=2.0)

    ids = [
        int(fields[1] if fields[0] == str(int(OutMsg.REQ_USER_INFO)) else fields[2])
        for fields in gateway.received
        if fields[0] in (str(int(OutMsg.REQ_USER_INFO)), str(int(OutMsg.REQ_ACCOUNT_SUMMARY)))
    ]
    assert len(ids) == 3
    assert ids == sorted(set(ids))


def test_concurrent_replies_are_routed_independently(gateway, connect) -> None:
    """Replies for interleaved requests reach their own callers."""
    release = threading.Event()
    held = []

    def hold_summary(session, fields):
        held.append((session, fields[2]))
        release.set()

    gateway.on(OutMsg.REQ_ACCOUNT_SUMMARY, hold_summary)
    client = connect()

    results = {}
    worker = threading.Thread(target=lambda: results.setdefault("summary", client.req_account_summary(timeout=2.0)))
    worker.start()
    assert release.wait(2.0)

    # user info is answered while the summary is still open
    assert client.req_user_info(timeout=2.0) == "WB-0001"

    session, req_id = held[0]
    session.send([InMsg.ACCOUNT_SUMMARY, 1, req_id, "DU9", "NetLiquidation", "5", "EUR"])
    session.send([InMsg.ACCOUNT_SUMMARY_END, 1, req_id])
    worker.join(2.0)
    assert [v.account for v in results["summary"]] == ["DU9"]


def test_unknown_and_broken_frames_are_isolated(gateway, connect, events) -> None:
    """Unsupported type ids and undecodable frames are dropped; the connection stays up."""

    def answer(session, fields):
        session.send([4242, "mystery", "payload"])
        session.send([InMsg.ACCOUNT_SUMMARY_END, 1, "not-a-number"])
        session.send([InMsg.USER_INFO, fields[1], "WB-OK"])

    gateway.on(OutMsg.REQ_USER_INFO, answer)
    client = connect()

    assert client.req_user_info(timeout=2.0) == "WB-OK"
    assert client.state is ConnectionState.READY
    assert events.empty()
    assert client.req_account_summary(timeout=2.0)


def test_frames_split_and_coalesced(gateway, connect, events) -> None:
    """Frames arriving in pieces, or several per read, are all decoded."""

    def answer(session, fields):
        data = encoded(InMsg.MANAGED_ACCTS, 1, "DU1,DU2") + encoded(InMsg.USER_INFO, fields[1], "WB-SPLIT")
        session.send_raw(data[:3])
        session.send_raw(data[3:17])
        session.send_raw(data[17:])

    gateway.on(OutMsg.REQ_USER_INFO, answer)
    client = connect()

    assert client.req_user_info(timeout=2.0) == "WB-SPLIT"
    event = events.get(timeout=2.0)
    assert event.name == "MANAGED_ACCTS"
    assert event.get("accounts_list") == "DU1,DU2"


def test_gateway_error_reaches_caller(gateway, connect, events) -> None:
    """An error message for a pending request raises GatewayError; others are events."""

    def reject(session, fields):
        session.send([InMsg.ERR_MSG, 2, -1, 2104, "Market data farm connection is OK:usfarm", ""])
        session.send([InMsg.ERR_MSG, 2, fields[2], 321, "Invalid account code", ""])

    gateway.on(OutMsg.REQ_ACCOUNT_SUMMARY, reject)
    client = connect()

    with pytest.raises(GatewayError) as excinfo:
        client.req_account_summary(group="Nope", timeout=2.0)
    assert excinfo.value.code == 321

    notice = GatewayNotice.from_message(events.get(timeout=2.0))
    assert notice.request_id == NO_REQUEST_ID
    assert notice.code == 2104
    assert notice.advanced_order_reject_json == ""


def test_market_data_type(gateway, connect) -> None:
    """Enumeration arguments are sent as their codes and validated client-side."""
    client = connect()
    client.req_market_data_type(MarketDataType.DELAYED)
    assert gateway.wait_for_message(OutMsg.REQ_MARKET_DATA_TYPE) == ["59", "1", "3"]

    with pytest.raises(InvalidFieldValueError):
        client.req_market_data_type("sideways")
    assert client.state is ConnectionState.READY


def test_cancel_account_summary(gateway, connect) -> None:
    """Cancelling sends the request id back to the gateway."""
    client = connect()
    client.cancel_account_summary(42)
    assert gateway.wait_for_message(OutMsg.CANCEL_ACCOUNT_SUMMARY) == ["63", "1", "42"]


def test_timeout_abandons_request(gateway, connect, events) -> None:
    """A timed-out request is deregistered, so its late reply resumes nobody."""
    gateway.on(OutMsg.REQ_USER_INFO, None)
    client = connect()

    with pytest.raises(TimeoutError):
        client.req_user_info(timeout=0.2)

    req_id = gateway.wait_for_message(OutMsg.REQ_USER_INFO)[1]
    session = gateway.wait_for_session()
    session.send([InMsg.USER_INFO, req_id, "late"])
    session.send([InMsg.NEXT_VALID_ID, 1, 1000])

    assert events.get(timeout=2.0).name == "NEXT_VALID_ID"
    assert events.empty()
    assert len(client._actor.correlator) == 0
    assert client.state is ConnectionState.READY


def test_connection_lost_fails_pending(gateway, connect) -> None:
    """The gateway hanging up fails the waiting caller and closes the connection."""

    def drop(session, fields):
        session.send([InMsg.ACCOUNT_SUMMARY, 1, fields[2], "DU1", "NetLiquidation", "1", "USD"])
        session.close()

    gateway.on(OutMsg.REQ_ACCOUNT_SUMMARY, drop)
    client = connect()

    with pytest.raises(ConnectionLost):
        client.req_account_summary(timeout=2.0)
    assert wait_until(lambda: client.state is ConnectionState.CLOSED)
    with pytest.raises(ConnectionLost):
        client.req_user_info(timeout=2.0)


def test_close_fails_pending(gateway, connect) -> None:
    """Closing the client fails requests still waiting."""
    gateway.on(OutMsg.REQ_USER_INFO, None)
    client = connect()
    errors = []

    def wait():
        try:
            client.req_user_info(timeout=5.0)
        except ConnectionLost as exc:
            errors.append(exc)

    worker = threading.Thread(target=wait)
    worker.start()
    gateway.wait_for_message(OutMsg.REQ_USER_INFO)
    client.close()
    worker.join(2.0)

    assert len(errors) == 1
    assert client.state is ConnectionState.CLOSED


def test_connection_options_in_hello(gateway, connect) -> None:
    """Connection options ride along with the version range."""
    connect(connection_options="+PACEAPI", min_client_version=150)
    assert gateway.hellos == ["v150..176 +PACEAPI"]


def test_requests_after_close_raise(gateway, connect) -> None:
    client = connect()
    client.close()
    assert not client.is_connected
    with pytest.raises(ConnectionLost):
        client.req_account_summary()
    with pytest.raises(ConnectionLost):
        client.req_market_data_type(MarketDataType.REALTIME)


def test_config_validation() -> None:
    """Bad settings are rejected before any connection is attempted."""
    with pytest.raises(ValidationError):
        ClientConfig(port=0)
    with pytest.raises(ValidationError):
        ClientConfig(min_client_version=150, max_client_version=120)
    config = ClientConfig(port=4002)
    with pytest.raises(ValidationError):
        config.port = 4001


class BrokenWrites:
    """Socket stand-in whose writes fail as if the peer had gone away."""

    def __init__(self, sock):
        self._sock = sock

    def sendall(self, data):
        raise BrokenPipeError(32, "Broken pipe")

    def __getattr__(self, name):
        return getattr(self._sock, name)


def explode(_session, _values):
    raise RuntimeError("predicate blew up")


def test_unknown_outbound_type_fails_only_its_caller(gateway, connect) -> None:
    """Rendering an unregistered type fails that send and leaves the connection up."""
    gateway.on(OutMsg.REQ_USER_INFO, None)
    client = connect()
    actor = client._actor
    pending_id, pending = actor.request(OutMsg.REQ_USER_INFO, family=USER_INFO_REPLY)

    with pytest.raises(UnknownMessageTypeError):
        actor.send(9999, {}).result(timeout=2.0)

    assert client.state is ConnectionState.READY
    assert not pending.done()
    session = gateway.wait_for_session()
    session.send([InMsg.USER_INFO, pending_id, "still-here"])
    assert pending.result(timeout=2.0).get("white_branding_id") == "still-here"


def test_raising_predicates_are_isolated(gateway, events) -> None:
    """Errors from schema predicates or sub-key functions never take the connection down."""
    registry = build_registry()
    registry.add_outbound(900, MessageSchema(900, "BROKEN", (FieldSpec("detail", FieldType.STRING, when=explode),)))
    registry.add_inbound(MessageSchema(950, "BROKEN_IN", (FieldSpec("detail", FieldType.STRING, when=explode),)))
    config = ClientConfig(port=gateway.port, handshake_timeout=2.0)

    with Client(config, on_event=events.put, registry=registry) as client:
        with pytest.raises(RuntimeError, match="predicate blew up"):
            client._actor.send(900, {"detail": "x"}).result(timeout=2.0)
        assert client.state is ConnectionState.READY

        session = gateway.wait_for_session()
        session.send([950, "x"])
        bad_key = ReplyFamily(
            "bad_key",
            terminal=frozenset({InMsg.ACCOUNT_SUMMARY_END}),
            partial=frozenset({InMsg.ACCOUNT_SUMMARY}),
            key=lambda message: message.fields["missing"],
        )
        gateway.on(OutMsg.REQ_ACCOUNT_SUMMARY, None)
        req_id, future = client._actor.request(
            OutMsg.REQ_ACCOUNT_SUMMARY, {"group": "All", "tags": "NetLiquidation"}, family=bad_key, streaming=True
        )
        gateway.wait_for_message(OutMsg.REQ_ACCOUNT_SUMMARY)
        session.send([InMsg.ACCOUNT_SUMMARY, 1, req_id, "DU1", "NetLiquidation", "1", "USD"])
        session.send([InMsg.ACCOUNT_SUMMARY_END, 1, req_id])

        # the partial is dropped, the terminal still completes the request
        assert future.result(timeout=2.0).messages() == []
        assert client.state is ConnectionState.READY
        assert client.req_user_info(timeout=2.0) == "WB-0001"
    assert events.empty()


def test_write_failure_fails_request(gateway, connect) -> None:
    """A failed write closes the connection and fails the request with ConnectionLost."""
    client = connect()
    client._actor._sock = BrokenWrites(client._actor._sock)

    with pytest.raises(ConnectionLost):
        client.req_user_info(timeout=2.0)
    assert wait_until(lambda: client.state is ConnectionState.CLOSED)
    assert not any(fields[0] == str(int(OutMsg.REQ_USER_INFO)) for fields in gateway.received)


def test_write_failure_fails_fire_and_forget(gateway, connect) -> None:
    """A message without a reply also learns that its write failed."""
    client = connect()
    client._actor._sock = BrokenWrites(client._actor._sock)

    with pytest.raises(ConnectionLost):
        client.req_market_data_type(MarketDataType.FROZEN)
    assert wait_until(lambda: client.state is ConnectionState.CLOSED)
