"""One-shot version negotiation that precedes all other traffic."""

import logging
import socket
from enum import Enum

from .constants import API_PREFIX, DEFAULT_HANDSHAKE_TIMEOUT, MAX_CLIENT_VER, MIN_CLIENT_VER
from .errors import CodecError, HandshakeFailed
from .frames import frame, read_fields, read_frame
from .session import NegotiatedSession


class HandshakeState(Enum):
    """Progress of a negotiation."""

    IDLE = "idle"
    SENT_VERSION_RANGE = "sent_version_range"
    AWAITING_SERVER_VERSION = "awaiting_server_version"
    NEGOTIATED = "negotiated"
    FAILED = "failed"


class HandshakeNegotiator:
    """Runs the version exchange on a freshly connected, blocking socket."""

    def __init__(
        self,
        sock: socket.socket,
        min_client_version: int = MIN_CLIENT_VER,
        max_client_version: int = MAX_CLIENT_VER,
        connection_options: str | None = None,
        timeout: float | None = DEFAULT_HANDSHAKE_TIMEOUT,
    ):
        """Initialize negotiator.

        Args:
            sock: Connected socket, not yet used for anything else
            min_client_version: Lowest protocol version offered
            max_client_version: Highest protocol version offered
            connection_options: Extra options appended to the version range
            timeout: Seconds to wait for the server version, None to wait forever
        """
        self.sock = sock
        self.min_client_version = min_client_version
        self.max_client_version = max_client_version
        self.connection_options = connection_options
        self.timeout = timeout
        self.state = HandshakeState.IDLE
        self.session: NegotiatedSession | None = None

    def hello(self) -> bytes:
        """Bytes of the opening message: raw prefix then the framed version range."""
        version_range = f"v{self.min_client_version}..{self.max_client_version}"
        if self.connection_options:
            version_range = f"{version_range} {self.connection_options}"
        return API_PREFIX + frame(version_range.encode("ascii"))

    def negotiate(self) -> NegotiatedSession:
        """Run the handshake to completion.

        Returns:
            The negotiated session

        Raises:
            HandshakeFailed: If the transport fails, times out, or the reply is unusable
        """
        if self.state is not HandshakeState.IDLE:
            raise HandshakeFailed(f"Handshake already attempted (state: {self.state.value})")
        try:
            self.sock.settimeout(self.timeout)
            self._send_version_range()
            server_version, connection_time = self._await_server_version()
            self.session = self._complete(server_version, connection_time)
        except HandshakeFailed:
            self.state = HandshakeState.FAILED
            raise
        except (OSError, CodecError) as exc:
            # socket.timeout and ConnectionError are both OSError
            self.state = HandshakeState.FAILED
            raise HandshakeFailed(f"Handshake failed: {exc}") from exc
        return self.session

    def _send_version_range(self) -> None:
        data = self.hello()
        logging.debug("Sending handshake %r", data)
        self.sock.sendall(data)
        self.state = HandshakeState.SENT_VERSION_RANGE

    def _await_server_version(self) -> tuple[bytes, bytes]:
        self.state = HandshakeState.AWAITING_SERVER_VERSION
        while True:
            fields = read_fields(read_frame(self.sock))
            if len(fields) == 2:
                return fields[0], fields[1]
            # The gateway sometimes sends a notice ahead of the version reply.
            logging.debug("Discarding pre-handshake message %r", fields)

    def _complete(self, server_version: bytes, connection_time: bytes) -> NegotiatedSession:
        try:
            version = int(server_version)
        except ValueError:
            raise HandshakeFailed(f"Server version {server_version!r} is not an integer") from None
        if version < self.min_client_version:
            raise HandshakeFailed(
                f"Server version {version} is below the minimum supported version {self.min_client_version}"
            )
        session = NegotiatedSession(
            min_client_version=self.min_client_version,
            max_client_version=self.max_client_version,
            server_version=version,
            connection_time=connection_time.decode("utf-8", errors="replace"),
        )
        self.state = HandshakeState.NEGOTIATED
        logging.debug("Negotiated server version %d at %s", session.server_version, session.connection_time)
        return session
