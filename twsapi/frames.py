"""Length-prefixed framing for the gateway wire protocol."""

import socket
import struct

from .constants import LENGTH_PREFIX_BYTES, MAX_MSG_LEN
from .errors import FrameTooLargeError
from .fields import NUL

_LENGTH = struct.Struct(">I")  # 4-byte, big-endian

# ----------------------------------------------------------------------------
# Frame serialization/deserialization
# ----------------------------------------------------------------------------


def frame(payload: bytes) -> bytes:
    """Prefix a payload with its 4-byte big-endian length.

    Args:
        payload: Complete message payload

    Returns:
        Length prefix followed by the payload

    Raises:
        FrameTooLargeError: If the payload exceeds the protocol maximum
    """
    if len(payload) > MAX_MSG_LEN:
        raise FrameTooLargeError(len(payload), MAX_MSG_LEN)
    return _LENGTH.pack(len(payload)) + payload


def unframe(buffer: bytes | bytearray | memoryview) -> tuple[bytes, int] | None:
    """Take the first complete frame off the front of a buffer.

    Args:
        buffer: Bytes received so far

    Returns:
        Tuple of payload and total bytes consumed, or None when the buffer does
        not yet hold a complete frame

    Raises:
        FrameTooLargeError: If the length prefix exceeds the protocol maximum
    """
    if len(buffer) < LENGTH_PREFIX_BYTES:
        return None
    (length,) = _LENGTH.unpack_from(buffer)
    if length > MAX_MSG_LEN:
        raise FrameTooLargeError(length, MAX_MSG_LEN)
    end = LENGTH_PREFIX_BYTES + length
    if len(buffer) < end:
        return None
    return bytes(buffer[LENGTH_PREFIX_BYTES:end]), end


def make_payload(fields: list[bytes]) -> bytes:
    """Join already-encoded text tokens into a payload, NUL-terminating each."""
    return b"".join(field + NUL for field in fields)


def read_fields(payload: bytes) -> list[bytes]:
    """Split a payload into its NUL-terminated tokens."""
    fields = payload.split(NUL)
    if fields and fields[-1] == b"":
        fields.pop()
    return fields


class FrameBuffer:
    """Reassembles frames from arbitrarily chunked stream reads.

    A single read may hold zero, one or several frames, and a frame may span
    several reads; only complete payloads ever leave the buffer.
    """

    def __init__(self) -> None:
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, data: bytes) -> list[bytes]:
        """Append received bytes and return every payload now complete."""
        self._buf.extend(data)
        payloads = []
        while True:
            result = unframe(self._buf)
            if result is None:
                break
            payload, consumed = result
            del self._buf[:consumed]
            payloads.append(payload)
        return payloads


# ----------------------------------------------------------------------------
# Blocking reads (handshake only)
# ----------------------------------------------------------------------------


def recv_exact(sock: socket.socket, n: int) -> bytes:
    """Receive exactly n bytes from socket.

    Args:
        sock: Socket to receive from
        n: Number of bytes to receive

    Returns:
        Received bytes

    Raises:
        ConnectionError: If connection is closed unexpectedly
    """
    buf = bytearray()
    while len(buf) < n:
        chunk = sock.recv(n - len(buf))
        if not chunk:
            raise ConnectionError("Unexpected EOF from peer")
        buf.extend(chunk)
    return bytes(buf)


def read_frame(sock: socket.socket) -> bytes:
    """Read one legacy-framed payload from a blocking socket.

    Reads exactly the frame and nothing past it, so the socket can be handed
    over to stream framing afterwards without losing buffered data.
    """
    (length,) = _LENGTH.unpack(recv_exact(sock, LENGTH_PREFIX_BYTES))
    if length > MAX_MSG_LEN:
        raise FrameTooLargeError(length, MAX_MSG_LEN)
    return recv_exact(sock, length)
