"""Typed field codecs for NUL-terminated wire fields."""

from enum import IntEnum
from typing import Any

from .base import NUL, FieldCodec, FieldType, split_field
from .enum_field import EnumField
from .numeric import FloatField, IntegerField
from .text import BooleanField, StringField

__all__ = [
    "NUL",
    "FieldCodec",
    "FieldType",
    "IntegerField",
    "FloatField",
    "StringField",
    "BooleanField",
    "EnumField",
    "split_field",
    "register_field_codec",
    "get_field_codec",
    "encode",
    "decode",
]


# Field codec registry
_CODECS: dict[FieldType, type[FieldCodec]] = {}


def register_field_codec(field_type: FieldType, codec_class: type[FieldCodec]) -> None:
    """Register a codec implementation for a field type."""
    _CODECS[field_type] = codec_class


def get_field_codec(field_type: FieldType, enum: type[IntEnum] | None = None) -> FieldCodec:
    """Get a codec instance for a field type.

    Enumerations need their lookup table passed as ``enum``.
    """
    if field_type is FieldType.ENUM:
        if enum is None:
            raise ValueError("enum fields need an enum table")
        return EnumField(enum)
    if field_type not in _CODECS:
        raise ValueError(f"Unsupported field type: {field_type}")
    return _CODECS[field_type]()


def encode(field_type: FieldType, value: Any, enum: type[IntEnum] | None = None) -> bytes:
    """Encode one value as a NUL-terminated field."""
    return get_field_codec(field_type, enum).encode(value)


def decode(field_type: FieldType, data: bytes, enum: type[IntEnum] | None = None) -> tuple[Any, bytes]:
    """Decode the first field of ``data``, returning the value and the rest."""
    return get_field_codec(field_type, enum).decode(data)


# Register default codecs
register_field_codec(FieldType.INT, IntegerField)
register_field_codec(FieldType.FLOAT, FloatField)
register_field_codec(FieldType.STRING, StringField)
register_field_codec(FieldType.BOOL, BooleanField)
