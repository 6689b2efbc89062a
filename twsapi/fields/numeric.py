"""Integer and float field codecs."""

import math
import re
from typing import Any

from ..errors import FieldDecodeError, InvalidFieldValueError
from .base import FieldCodec, FieldType

_INT_RE = re.compile(rb"[+-]?\d+")
_FLOAT_RE = re.compile(rb"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


class IntegerField(FieldCodec):
    """Signed integer as decimal ASCII text."""

    field_type = FieldType.INT

    def to_text(self, value: Any) -> str:
        # bool is an int subclass but has its own wire form
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidFieldValueError(self.field_type, value, "expected an integer")
        return str(int(value))

    def from_text(self, token: bytes) -> int:
        if not _INT_RE.fullmatch(token):
            raise FieldDecodeError(self.field_type, token)
        return int(token)


class FloatField(FieldCodec):
    """IEEE double as decimal ASCII text."""

    field_type = FieldType.FLOAT

    def to_text(self, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, int | float):
            raise InvalidFieldValueError(self.field_type, value, "expected a number")
        value = float(value)
        if not math.isfinite(value):
            raise InvalidFieldValueError(self.field_type, value, "not a finite number")
        return repr(value)

    def from_text(self, token: bytes) -> float:
        if not _FLOAT_RE.fullmatch(token):
            raise FieldDecodeError(self.field_type, token)
        return float(token)
