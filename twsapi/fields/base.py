"""Base field codec interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

from ..errors import FieldDecodeError, InvalidFieldValueError, MissingFieldError

NUL = b"\0"


class FieldType(str, Enum):
    """Type tags used by message schemas."""

    INT = "int"
    FLOAT = "float"
    STRING = "str"
    BOOL = "bool"
    ENUM = "enum"

    def __str__(self) -> str:
        return self.value


def split_field(data: bytes) -> tuple[bytes, bytes]:
    """Split the first NUL-terminated token off ``data``.

    A final token without a terminator is returned whole.
    """
    token, _sep, rest = data.partition(NUL)
    return token, rest


class FieldCodec(ABC):
    """Base interface for field codecs.

    Subclasses only convert between Python values and the text of a single
    token; NUL termination and the shared error checks live here.
    """

    field_type: FieldType

    @abstractmethod
    def to_text(self, value: Any) -> str:
        """Render a value as wire text, raising InvalidFieldValueError if it cannot be."""

    @abstractmethod
    def from_text(self, token: bytes) -> Any:
        """Parse one token, raising FieldDecodeError if it is malformed."""

    def encode(self, value: Any, name: str | None = None) -> bytes:
        """Encode a value as one NUL-terminated field.

        Args:
            value: Value to encode
            name: Field name, used in error messages only

        Returns:
            Field bytes including the terminating NUL

        Raises:
            MissingFieldError: If value is None
            InvalidFieldValueError: If value cannot be represented
        """
        if value is None:
            raise MissingFieldError(self.field_type, name)
        data = self.to_text(value).encode("utf-8")
        if NUL in data:
            raise InvalidFieldValueError(self.field_type, value, "embedded NUL byte")
        return data + NUL

    def decode(self, data: bytes) -> tuple[Any, bytes]:
        """Decode the first field in ``data``.

        Args:
            data: Buffer positioned at the start of a field

        Returns:
            Tuple of decoded value and the remaining bytes

        Raises:
            FieldDecodeError: If the buffer is empty or the token is malformed
        """
        if not data:
            raise FieldDecodeError(self.field_type, data, "no field left in buffer")
        token, rest = split_field(data)
        return self.from_text(token), rest
