"""Exception hierarchy for the gateway client."""

from typing import Any


class TWSError(Exception):
    """Base class for every error raised by this package."""


# ----------------------------------------------------------------------------
# Codec errors (local, never fatal to the connection)
# ----------------------------------------------------------------------------


class CodecError(TWSError):
    """A value or frame could not be converted to or from wire bytes."""


class FieldDecodeError(CodecError):
    """Raised when a wire field cannot be decoded as its declared type."""

    def __init__(self, field_type: Any, data: bytes, reason: str = "malformed value"):
        self.field_type = field_type
        self.data = data
        super().__init__(f"cannot decode {field_type} field from {data!r}: {reason}")


class MissingFieldError(CodecError):
    """Raised when a required field has no value to encode."""

    def __init__(self, field_type: Any, name: str | None = None):
        self.field_type = field_type
        self.name = name
        message = f"missing value for required {field_type} field"
        if name:
            message += f" {name!r}"
        super().__init__(message)


class InvalidFieldValueError(CodecError):
    """Raised when a value cannot be represented as a wire field."""

    def __init__(self, field_type: Any, value: Any, reason: str):
        self.field_type = field_type
        self.value = value
        super().__init__(f"invalid {field_type} value {value!r}: {reason}")


class UnknownMessageTypeError(CodecError):
    """Raised when no outbound schema is registered for a message type."""

    def __init__(self, message_type: int):
        self.message_type = message_type
        super().__init__(f"no outbound schema for message type {message_type}")


class FrameTooLargeError(CodecError):
    """Raised when a length prefix exceeds the protocol maximum."""

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"frame length {length} exceeds maximum {limit}")


# ----------------------------------------------------------------------------
# Connection errors (fatal)
# ----------------------------------------------------------------------------


class HandshakeFailed(TWSError):
    """The version negotiation did not complete; the connection is unusable."""


class ConnectionLost(TWSError):
    """The transport failed or was closed while requests were outstanding."""


# ----------------------------------------------------------------------------
# Request errors
# ----------------------------------------------------------------------------


class UnsupportedFeatureError(TWSError):
    """The negotiated server version is too old for the requested feature."""

    def __init__(self, feature: str, required: int, negotiated: int):
        self.feature = feature
        self.required = required
        self.negotiated = negotiated
        super().__init__(
            f"feature {feature!r} needs server version {required}, negotiated version is {negotiated}"
        )


class GatewayError(TWSError):
    """The gateway answered a request with an error message."""

    def __init__(self, request_id: int, code: int, message: str):
        self.request_id = request_id
        self.code = code
        self.message = message
        super().__init__(f"request {request_id} failed with gateway error {code}: {message}")
