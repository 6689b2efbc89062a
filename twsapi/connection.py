"""Connection actor: the single owner of a gateway socket.

All connection state (socket, negotiated session, pending requests, request id
counter) is touched only by the actor's own thread. Callers talk to it through
a mailbox and wait on a :class:`concurrent.futures.Future` per request.
"""

import itertools
import logging
import queue
import selectors
import socket
import threading
from collections.abc import Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .config import ClientConfig
from .constants import RECV_CHUNK_BYTES, OutMsg
from .correlator import EventSink, ReplyFamily, RequestCorrelator, fail_future, resolve_future
from .errors import CodecError, ConnectionLost
from .frames import FrameBuffer, frame
from .handshake import HandshakeNegotiator
from .messages import ERROR_TYPES, build_registry, terminal_types
from .registry import Message, MessageRegistry
from .session import NegotiatedSession


class ConnectionState(Enum):
    """Lifecycle of a connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    READY = "ready"
    CLOSED = "closed"


# ----------------------------------------------------------------------------
# Mailbox commands
# ----------------------------------------------------------------------------


@dataclass
class _Send:
    message_type: int
    values: dict[str, Any]
    future: Future
    request_id: int | None = None
    family: ReplyFamily | None = None
    streaming: bool = False


@dataclass
class _Abandon:
    request_id: int


@dataclass
class _Close:
    reason: str = field(default="Connection closed by client")


def log_event(message: Message) -> None:
    """Default sink for unsolicited messages."""
    if message.type_id in ERROR_TYPES:
        logging.warning(
            "Gateway notice %s (request %s): %s",
            message.get("error_code"),
            message.get("req_id"),
            message.get("error_string"),
        )
    else:
        logging.debug("Unsolicited %s: %r", message.name, message.fields)


class ConnectionActor(threading.Thread):
    """Owns one gateway connection from connect to close."""

    def __init__(
        self,
        config: ClientConfig,
        registry: MessageRegistry | None = None,
        on_event: EventSink | None = None,
        start_api: bool = True,
    ):
        """Initialize actor.

        Args:
            config: Connection configuration
            registry: Message schemas, defaults to the built-in catalog
            on_event: Called on the actor thread with every unsolicited message
            start_api: Send START_API right after the handshake
        """
        super().__init__(name=f"twsapi-{config.host}:{config.port}", daemon=True)
        self.config = config
        self.registry = registry or build_registry()
        self.correlator = RequestCorrelator(on_event or log_event, terminal_types(), ERROR_TYPES)
        self.start_api = start_api
        self.session: NegotiatedSession | None = None
        self._state = ConnectionState.DISCONNECTED
        self._sock: socket.socket | None = None
        self._frames = FrameBuffer()
        self._request_ids = itertools.count(1)
        self._ready: Future = Future()
        self._close_reason: str | None = None

        self._mailbox: queue.SimpleQueue = queue.SimpleQueue()
        self._mailbox_lock = threading.Lock()
        self._accepting = True
        self._wakeup_rx, self._wakeup_tx = socket.socketpair()
        self._wakeup_rx.setblocking(False)
        self._wakeup_tx.setblocking(False)

    @property
    def state(self) -> ConnectionState:
        return self._state

    # ------------------------------------------------------------------
    # Caller-side API
    # ------------------------------------------------------------------

    def open(self, timeout: float | None = None) -> NegotiatedSession:
        """Start the actor and wait until the connection is ready.

        Raises:
            OSError: If the TCP connection cannot be established
            HandshakeFailed: If version negotiation fails
        """
        self.start()
        return self._ready.result(timeout)

    def wait_ready(self, timeout: float | None = None) -> NegotiatedSession:
        """Block until the handshake has completed."""
        return self._ready.result(timeout)

    def request(
        self,
        message_type: int,
        values: Mapping[str, Any] | None = None,
        *,
        family: ReplyFamily,
        streaming: bool = False,
        feature: str | None = None,
    ) -> tuple[int, Future]:
        """Send a request that expects a reply.

        A fresh request id is stored in the ``req_id`` field.

        Args:
            message_type: Outbound type id
            values: Field values
            family: Message types that continue and end the reply
            streaming: Whether the reply is partial messages followed by a terminal one
            feature: Feature the request needs from the negotiated server version

        Returns:
            Tuple of the request id and the future resolved with the reply

        Raises:
            ConnectionLost: If the connection is not ready
            UnsupportedFeatureError: If the server version lacks ``feature``
        """
        session = self._require_ready()
        if feature is not None:
            session.require(feature)
        request_id = next(self._request_ids)
        future: Future = Future()
        values = {**(values or {}), "req_id": request_id}
        self._post(_Send(message_type, values, future, request_id, family, streaming))
        return request_id, future

    def send(self, message_type: int, values: Mapping[str, Any] | None = None, *, feature: str | None = None) -> Future:
        """Send a message without a reply; the future resolves once it is written."""
        session = self._require_ready()
        if feature is not None:
            session.require(feature)
        future: Future = Future()
        self._post(_Send(message_type, dict(values or {}), future))
        return future

    def abandon(self, request_id: int) -> None:
        """Drop a pending request whose caller stopped waiting."""
        self._post(_Abandon(request_id), required=False)

    def close(self, timeout: float | None = None) -> None:
        """Close the connection, failing outstanding requests with ConnectionLost."""
        if self.ident is None:
            # never started: nothing but the wakeup pair to release
            self._shutdown()
            return
        self._post(_Close(), required=False)
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    def _require_ready(self) -> NegotiatedSession:
        if self._state is not ConnectionState.READY or self.session is None:
            raise ConnectionLost(f"Connection is not ready (state: {self._state.value})")
        return self.session

    def _post(self, command: Any, required: bool = True) -> None:
        with self._mailbox_lock:
            if not self._accepting:
                if required:
                    raise ConnectionLost(self._close_reason or "Connection is closed")
                return
            self._mailbox.put(command)
            try:
                self._wakeup_tx.send(b"\0")
            except BlockingIOError:
                pass  # a wakeup is already queued

    # ------------------------------------------------------------------
    # Actor thread
    # ------------------------------------------------------------------

    def run(self) -> None:
        try:
            self._open()
        except Exception as exc:
            self._close_reason = f"Connection failed: {exc}"
            self._shutdown()
            self._ready.set_exception(exc)
            return

        self._ready.set_result(self.session)
        try:
            self._serve()
        finally:
            self._shutdown()

    def _open(self) -> None:
        cfg = self.config
        self._state = ConnectionState.CONNECTING
        logging.info("Connecting to %s:%d w/ id:%d", cfg.host, cfg.port, cfg.client_id)
        self._sock = socket.create_connection((cfg.host, cfg.port), timeout=cfg.connect_timeout)

        self._state = ConnectionState.NEGOTIATING
        negotiator = HandshakeNegotiator(
            self._sock,
            min_client_version=cfg.min_client_version,
            max_client_version=cfg.max_client_version,
            connection_options=cfg.connection_options,
            timeout=cfg.handshake_timeout,
        )
        self.session = negotiator.negotiate()

        # From here on the stream is read through FrameBuffer.
        self._sock.settimeout(None)
        if self.start_api:
            values = {"client_id": cfg.client_id, "opt_capabilities": cfg.opt_capabilities}
            self._sock.sendall(frame(self.registry.render(OutMsg.START_API, values, self.session)))
        self._state = ConnectionState.READY
        logging.info("Connected to %s:%d, server version %d", cfg.host, cfg.port, self.session.server_version)

    def _serve(self) -> None:
        with selectors.DefaultSelector() as selector:
            selector.register(self._sock, selectors.EVENT_READ)
            selector.register(self._wakeup_rx, selectors.EVENT_READ)
            while self._state is ConnectionState.READY:
                for key, _events in selector.select():
                    if key.fileobj is self._wakeup_rx:
                        self._drain_mailbox()
                    else:
                        self._receive()
                    if self._state is not ConnectionState.READY:
                        break

    def _receive(self) -> None:
        try:
            data = self._sock.recv(RECV_CHUNK_BYTES)
        except OSError as exc:
            self._lose(f"Read failed: {exc}")
            return
        if not data:
            self._lose("Connection closed by gateway")
            return

        try:
            payloads = self._frames.feed(data)
        except CodecError as exc:
            self._lose(f"Corrupt stream: {exc}")
            return
        for payload in payloads:
            self._dispatch(payload)

    def _dispatch(self, payload: bytes) -> None:
        try:
            message = self.registry.parse(payload, self.session)
        except CodecError as exc:
            logging.warning("Dropping undecodable frame: %s", exc)
            return
        except Exception:
            logging.exception("Dropping frame that failed to decode")
            return
        if message is None:
            type_id = payload.split(b"\0", 1)[0]
            logging.warning("Dropping message with unsupported type id %s", type_id.decode("ascii", "replace"))
            return
        logging.debug("RECEIVED %s %r", message.name, message.fields)
        try:
            self.correlator.route(message)
        except Exception:
            logging.exception("Dropping %s: routing failed", message.name)

    def _drain_mailbox(self) -> None:
        try:
            self._wakeup_rx.recv(4096)
        except BlockingIOError:
            pass
        while self._state is ConnectionState.READY:
            try:
                command = self._mailbox.get_nowait()
            except queue.Empty:
                return
            self._handle(command)

    def _handle(self, command: Any) -> None:
        if isinstance(command, _Send):
            self._send(command)
        elif isinstance(command, _Abandon):
            self.correlator.discard(command.request_id)
        elif isinstance(command, _Close):
            self._close_reason = command.reason
            self._state = ConnectionState.CLOSED

    def _send(self, command: _Send) -> None:
        if command.future.cancelled():
            return
        try:
            data = frame(self.registry.render(command.message_type, command.values, self.session))
        except Exception as exc:
            # only this caller fails, the connection stays up
            logging.warning("Cannot render message type %s: %s", command.message_type, exc)
            fail_future(command.future, exc)
            return

        if command.family is not None:
            if command.streaming:
                self.correlator.register_streaming(command.request_id, command.future, command.family)
            else:
                self.correlator.register(command.request_id, command.future, command.family)

        logging.debug("SENDING %r", data)
        try:
            self._sock.sendall(data)
        except OSError as exc:
            self._lose(f"Write failed: {exc}")
            if command.family is None:
                fail_future(command.future, ConnectionLost(self._close_reason))
            return
        if command.family is None:
            resolve_future(command.future, None)

    def _lose(self, reason: str) -> None:
        logging.warning("Connection to %s:%d lost: %s", self.config.host, self.config.port, reason)
        self._close_reason = reason
        self._state = ConnectionState.CLOSED

    def _shutdown(self) -> None:
        with self._mailbox_lock:
            self._accepting = False
        self._state = ConnectionState.CLOSED
        exc = ConnectionLost(self._close_reason or "Connection closed")
        self.correlator.fail_all(exc)
        while True:
            try:
                command = self._mailbox.get_nowait()
            except queue.Empty:
                break
            if isinstance(command, _Send):
                fail_future(command.future, exc)

        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            finally:
                self._sock.close()
        self._wakeup_rx.close()
        self._wakeup_tx.close()
        logging.info("Connection to %s:%d closed: %s", self.config.host, self.config.port, exc)
