"""In-process fake gateway for tests and demos.

The fake speaks the gateway side of the wire protocol: it answers the version
handshake, then hands every framed request to a per-type handler which may
write any reply frames it likes.
"""

import logging
import socket
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from .constants import API_PREFIX, MAX_CLIENT_VER, InMsg, OutMsg
from .frames import FrameBuffer, frame, make_payload, read_fields, read_frame, recv_exact

Handler = Callable[["GatewaySession", list[str]], None]

DEFAULT_ACCOUNT_VALUES = (
    ("DU123456", "NetLiquidation", "100000.00", "USD"),
    ("DU123456", "TotalCashValue", "25000.00", "USD"),
    ("DU123456", "AccountType", "INDIVIDUAL", ""),
)


class GatewaySession(threading.Thread):
    """Handle a single client connection."""

    def __init__(self, sock: socket.socket, addr, gateway: "FakeGateway"):
        """Initialize session handler.

        Args:
            sock: Client socket
            addr: Client address
            gateway: Gateway holding the script and the handlers
        """
        super().__init__(daemon=True)
        self.sock = sock
        self.addr = addr
        self.gateway = gateway
        self.version_range: str | None = None
        self.running = True

    def run(self):
        """Handle client connection."""
        try:
            self._serve()
        except Exception as exc:
            logging.debug("Client %s closed: %s", self.addr, exc)
        finally:
            self.sock.close()

    def _serve(self):
        """Serve client requests."""
        # Expect the raw prefix, then the framed version range
        if recv_exact(self.sock, len(API_PREFIX)) != API_PREFIX:
            return
        self.version_range = read_frame(self.sock).decode("ascii")
        self.gateway._record_hello(self.version_range)
        if not self.gateway.handshake:
            return

        for fields in self.gateway.preamble:
            self.send(fields)
        self.send([self.gateway.server_version, self.gateway.connection_time])

        buffer = FrameBuffer()
        while self.running:
            data = self.sock.recv(65536)
            if not data:
                break
            for payload in buffer.feed(data):
                fields = [field.decode("utf-8") for field in read_fields(payload)]
                self.gateway._record(fields)
                self._handle(fields)

    def _handle(self, fields: list[str]) -> None:
        handler = self.gateway.handlers.get(int(fields[0]))
        if handler is not None:
            handler(self, fields)

    def send(self, fields: Iterable[Any]) -> None:
        """Write one framed message made of ``fields``."""
        self.send_raw(frame(make_payload([str(field).encode("utf-8") for field in fields])))

    def send_raw(self, data: bytes) -> None:
        """Write bytes as-is, e.g. a frame split across several writes."""
        self.sock.sendall(data)

    def close(self) -> None:
        """Drop the connection from the gateway side."""
        self.running = False
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass


class FakeGateway:
    """Scripted gateway that accepts connections on a local port."""

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 0,
        server_version: int = MAX_CLIENT_VER,
        connection_time: str = "20240101 10:00:00",
        preamble: Sequence[Sequence[Any]] = (),
        handshake: bool = True,
        account_values: Sequence[Sequence[str]] = DEFAULT_ACCOUNT_VALUES,
    ):
        """Initialize gateway.

        Args:
            host: Host to bind to
            port: Port to bind to, 0 picks a free port
            server_version: Version announced in the handshake reply
            connection_time: Connection time announced in the handshake reply
            preamble: Messages sent before the handshake reply
            handshake: When False, drop every client right after its hello
            account_values: (account, tag, value, currency) rows of the default
                account summary handler
        """
        self.host = host
        self.port = port
        self.server_version = server_version
        self.connection_time = connection_time
        self.preamble = [list(fields) for fields in preamble]
        self.handshake = handshake
        self.account_values = [tuple(row) for row in account_values]
        self.handlers: dict[int, Handler] = {
            OutMsg.REQ_ACCOUNT_SUMMARY: self._answer_account_summary,
            OutMsg.REQ_USER_INFO: self._answer_user_info,
        }
        self.sessions: list[GatewaySession] = []
        self.hellos: list[str] = []
        self.received: list[list[str]] = []
        self._changed = threading.Condition()
        self._sock: socket.socket | None = None
        self._running = threading.Event()
        self._thread: threading.Thread | None = None

    def on(self, message_type: int, handler: Handler | None) -> None:
        """Set (or with None, remove) the handler of an outbound message type."""
        if handler is None:
            self.handlers.pop(int(message_type), None)
        else:
            self.handlers[int(message_type)] = handler

    # ------------------------------------------------------------------
    # Default handlers
    # ------------------------------------------------------------------

    def _answer_account_summary(self, session: GatewaySession, fields: list[str]) -> None:
        req_id = fields[2]
        for account, tag, value, currency in self.account_values:
            session.send([InMsg.ACCOUNT_SUMMARY, 1, req_id, account, tag, value, currency])
        session.send([InMsg.ACCOUNT_SUMMARY_END, 1, req_id])

    def _answer_user_info(self, session: GatewaySession, fields: list[str]) -> None:
        session.send([InMsg.USER_INFO, fields[1], "WB-0001"])

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def _record_hello(self, version_range: str) -> None:
        with self._changed:
            self.hellos.append(version_range)
            self._changed.notify_all()

    def _record(self, fields: list[str]) -> None:
        with self._changed:
            self.received.append(fields)
            self._changed.notify_all()

    def wait_for_message(self, message_type: int, timeout: float = 2.0) -> list[str]:
        """Wait until the gateway has received a message of ``message_type``.

        Returns:
            Fields of the first such message

        Raises:
            TimeoutError: If none arrives in time
        """
        wanted = str(int(message_type))

        def find():
            return next((fields for fields in self.received if fields and fields[0] == wanted), None)

        with self._changed:
            if not self._changed.wait_for(lambda: find() is not None, timeout):
                raise TimeoutError(f"Gateway received no message of type {wanted}")
            return find()

    def wait_for_session(self, timeout: float = 2.0) -> GatewaySession:
        """Wait until a client has sent its hello, returning the newest session."""
        with self._changed:
            if not self._changed.wait_for(lambda: self.hellos and self.sessions, timeout):
                raise TimeoutError("No client connected")
            return self.sessions[-1]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def serve_forever(self):
        """Start the gateway and handle connections."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as srv:
            srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            srv.bind((self.host, self.port))
            srv.listen()
            self.port = srv.getsockname()[1]
            self._sock = srv
            self._running.set()

            logging.info("Fake gateway listening on %s:%d", self.host, self.port)

            while self._running.is_set():
                try:
                    cli_sock, addr = srv.accept()
                except OSError:
                    break  # socket closed
                session = GatewaySession(cli_sock, addr, self)
                with self._changed:
                    self.sessions.append(session)
                    self._changed.notify_all()
                session.start()

    def start(self, timeout: float = 2.0) -> "FakeGateway":
        """Run serve_forever in a background thread and wait until it listens."""
        self._thread = threading.Thread(target=self.serve_forever, name="fake-gateway", daemon=True)
        self._thread.start()
        if not self._running.wait(timeout):
            raise TimeoutError("Fake gateway did not start")
        return self

    def stop(self):
        """Stop the gateway and drop every client."""
        self._running.clear()
        if self._sock:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
        for session in self.sessions:
            session.close()
        if self._thread is not None:
            self._thread.join(timeout=2.0)

    def __enter__(self) -> "FakeGateway":
        return self.start()

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
