# Copyright 2026 The twsapi Authors
# SPDX-License-Identifier: Apache-2.0
r"""twsapi - A client for the TWS / IB Gateway socket API.

The gateway speaks a length-prefixed protocol whose payloads are NUL-terminated
text fields. This package provides:
- Typed field codecs (integer, float, string, boolean, enumeration)
- Length-prefix framing and stream reassembly
- A schema registry with server-version-gated fields
- The one-shot version handshake
- Request/reply correlation, including multi-message streaming replies
- A connection actor thread and a blocking Client facade
"""

# Import public API from modules
from .client import Client
from .config import ClientConfig
from .connection import ConnectionActor, ConnectionState
from .constants import (
    API_PREFIX,
    MAX_CLIENT_VER,
    MAX_MSG_LEN,
    MIN_CLIENT_VER,
    InMsg,
    MarketDataType,
    OutMsg,
)
from .correlator import PendingRequest, ReplyFamily, RequestCorrelator, StreamReply
from .errors import (
    CodecError,
    ConnectionLost,
    FieldDecodeError,
    FrameTooLargeError,
    GatewayError,
    HandshakeFailed,
    InvalidFieldValueError,
    MissingFieldError,
    TWSError,
    UnknownMessageTypeError,
    UnsupportedFeatureError,
)
from .fields import FieldType, decode, encode, get_field_codec
from .frames import FrameBuffer, frame, unframe
from .handshake import HandshakeNegotiator, HandshakeState
from .messages import build_registry
from .objects import AccountValue, GatewayNotice
from .registry import FieldSpec, Message, MessageRegistry, MessageSchema
from .session import NegotiatedSession
from .versions import min_server_version

# Public API exports
__all__ = [
    # Core classes
    "Client",
    "ClientConfig",
    "ConnectionActor",
    "ConnectionState",
    "HandshakeNegotiator",
    "HandshakeState",
    "NegotiatedSession",
    "RequestCorrelator",
    "PendingRequest",
    "ReplyFamily",
    "StreamReply",
    "MessageRegistry",
    "MessageSchema",
    "FieldSpec",
    "Message",
    "FrameBuffer",
    "AccountValue",
    "GatewayNotice",
    # Constants and enums
    "API_PREFIX",
    "MIN_CLIENT_VER",
    "MAX_CLIENT_VER",
    "MAX_MSG_LEN",
    "InMsg",
    "OutMsg",
    "MarketDataType",
    "FieldType",
    # Errors
    "TWSError",
    "CodecError",
    "FieldDecodeError",
    "MissingFieldError",
    "InvalidFieldValueError",
    "FrameTooLargeError",
    "UnknownMessageTypeError",
    "HandshakeFailed",
    "ConnectionLost",
    "UnsupportedFeatureError",
    "GatewayError",
    # Codec utilities
    "encode",
    "decode",
    "get_field_codec",
    "frame",
    "unframe",
    "build_registry",
    "min_server_version",
]
