"""String and boolean field codecs."""

from typing import Any

from ..errors import FieldDecodeError, InvalidFieldValueError
from .base import FieldCodec, FieldType


class StringField(FieldCodec):
    """UTF-8 text up to the next NUL."""

    field_type = FieldType.STRING

    def to_text(self, value: Any) -> str:
        if not isinstance(value, str):
            raise InvalidFieldValueError(self.field_type, value, "expected a string")
        if not value.isprintable():
            raise InvalidFieldValueError(self.field_type, value, "contains non-printable characters")
        return value

    def from_text(self, token: bytes) -> str:
        try:
            return token.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FieldDecodeError(self.field_type, token, "invalid UTF-8") from exc


class BooleanField(FieldCodec):
    """Boolean as exactly ``1`` or ``0``."""

    field_type = FieldType.BOOL

    def to_text(self, value: Any) -> str:
        if not isinstance(value, bool):
            raise InvalidFieldValueError(self.field_type, value, "expected a bool")
        return "1" if value else "0"

    def from_text(self, token: bytes) -> bool:
        if token == b"1":
            return True
        if token == b"0":
            return False
        raise FieldDecodeError(self.field_type, token, "expected '1' or '0'")
