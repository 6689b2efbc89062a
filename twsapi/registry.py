"""Message schemas and the registry mapping type ids to them.

Schemas are plain data: an ordered tuple of :class:`FieldSpec` per message
type. Rendering and parsing walk that tuple, evaluating each field's presence
predicate against the :class:`~twsapi.session.NegotiatedSession`, so a field
gated on a newer server version is neither written nor expected on older
servers.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .errors import UnknownMessageTypeError
from .fields import FieldType, decode, get_field_codec
from .session import NegotiatedSession

Predicate = Callable[[NegotiatedSession | None, Mapping[str, Any]], bool]

# ----------------------------------------------------------------------------
# Schema structures
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldSpec:
    """One field of a message schema.

    ``since`` names a feature from the version table; the field only exists on
    the wire when the session supports it. ``when`` is an extra predicate over
    the session and the message values (request parameters when rendering,
    fields decoded so far when parsing).
    """

    name: str
    type: FieldType
    since: str | None = None
    when: Predicate | None = None
    default: Any = None
    enum: type[IntEnum] | None = None

    def is_present(self, session: NegotiatedSession | None, values: Mapping[str, Any]) -> bool:
        if self.since is not None and (session is None or not session.supports(self.since)):
            return False
        if self.when is not None and not self.when(session, values):
            return False
        return True


@dataclass(frozen=True)
class MessageSchema:
    """Ordered field layout of one message type."""

    type_id: int
    name: str
    fields: tuple[FieldSpec, ...] = ()


@dataclass(frozen=True)
class Message:
    """A decoded inbound message."""

    type_id: int
    name: str
    fields: dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    @property
    def request_id(self) -> int | None:
        return self.fields.get("req_id")


SchemaSelector = Callable[[NegotiatedSession | None], MessageSchema]

# ----------------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------------


class MessageRegistry:
    """Bidirectional table of message schemas keyed by type id."""

    def __init__(self) -> None:
        self._outbound: dict[int, MessageSchema | SchemaSelector] = {}
        self._inbound: dict[int, MessageSchema] = {}

    def add_outbound(self, message_type: int, schema: MessageSchema | SchemaSelector) -> None:
        """Register an outbound schema, or a function choosing between variants by session."""
        self._outbound[int(message_type)] = schema

    def add_inbound(self, schema: MessageSchema) -> None:
        """Register an inbound schema under its type id."""
        self._inbound[schema.type_id] = schema

    def schema_for_outbound(self, message_type: int, session: NegotiatedSession | None = None) -> MessageSchema:
        """Get the schema to render ``message_type`` with.

        Raises:
            UnknownMessageTypeError: If no outbound schema is registered for the type
        """
        try:
            entry = self._outbound[int(message_type)]
        except KeyError:
            raise UnknownMessageTypeError(message_type) from None
        if isinstance(entry, MessageSchema):
            return entry
        return entry(session)

    def schema_for_inbound(self, type_id: int) -> MessageSchema | None:
        """Get the schema for an inbound type id, or None when it is unknown."""
        return self._inbound.get(type_id)

    def render(
        self, message_type: int, values: Mapping[str, Any], session: NegotiatedSession | None = None
    ) -> bytes:
        """Render an outbound message payload.

        Args:
            message_type: Outbound type id
            values: Field values by name; absent fields fall back to schema defaults
            session: Negotiated session used for presence predicates

        Returns:
            Payload bytes, type id first, without the length prefix

        Raises:
            UnknownMessageTypeError: If no outbound schema is registered for the type
            MissingFieldError: If a present field has no value and no default
            InvalidFieldValueError: If a value cannot be encoded
        """
        schema = self.schema_for_outbound(message_type, session)
        parts = [get_field_codec(FieldType.INT).encode(schema.type_id)]
        for spec in schema.fields:
            if not spec.is_present(session, values):
                continue
            value = values.get(spec.name)
            if value is None:
                value = spec.default
            parts.append(get_field_codec(spec.type, spec.enum).encode(value, spec.name))
        return b"".join(parts)

    def parse(self, payload: bytes, session: NegotiatedSession | None = None) -> Message | None:
        """Decode an inbound payload.

        Returns:
            The decoded message, or None when the type id is not registered

        Raises:
            FieldDecodeError: If the type id or any field is malformed or missing
        """
        type_id, rest = decode(FieldType.INT, payload)
        schema = self.schema_for_inbound(type_id)
        if schema is None:
            return None

        values: dict[str, Any] = {}
        for spec in schema.fields:
            if not spec.is_present(session, values):
                continue
            values[spec.name], rest = get_field_codec(spec.type, spec.enum).decode(rest)

        if rest:
            logging.debug("Ignoring %d trailing bytes in %s", len(rest), schema.name)
        return Message(type_id=type_id, name=schema.name, fields=values)
