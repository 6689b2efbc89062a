"""Closed enumeration field codec."""

from enum import IntEnum
from typing import Any

from ..errors import FieldDecodeError, InvalidFieldValueError
from .base import FieldCodec, FieldType


class EnumField(FieldCodec):
    """Symbolic value sent as its integer code.

    Accepts a member of ``enum``, its name (case-insensitive) or its integer
    code when encoding; always decodes to the member.
    """

    field_type = FieldType.ENUM

    def __init__(self, enum: type[IntEnum]):
        self.enum = enum

    def _lookup(self, value: Any) -> IntEnum:
        if isinstance(value, self.enum):
            return value
        if isinstance(value, str):
            try:
                return self.enum[value.upper()]
            except KeyError:
                pass
        elif isinstance(value, int) and not isinstance(value, bool):
            try:
                return self.enum(value)
            except ValueError:
                pass
        raise InvalidFieldValueError(self.field_type, value, f"not a {self.enum.__name__} value")

    def to_text(self, value: Any) -> str:
        return str(int(self._lookup(value)))

    def from_text(self, token: bytes) -> IntEnum:
        try:
            return self.enum(int(token))
        except ValueError as exc:
            raise FieldDecodeError(self.field_type, token, f"unknown {self.enum.__name__} code") from exc
