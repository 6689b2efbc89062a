"""Routing of inbound messages to the callers waiting on them.

Every request that expects a reply is registered under its request id with a
:class:`concurrent.futures.Future` and the :class:`ReplyFamily` describing
which message types continue or end the reply. The correlator is driven only
from the connection's own processing loop, so it holds no locks.
"""

import logging
from collections.abc import Callable, Hashable, Iterable
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any

from .errors import ConnectionLost, GatewayError
from .registry import Message

EventSink = Callable[[Message], None]
KeyFunc = Callable[[Message], Hashable]


@dataclass(frozen=True)
class ReplyFamily:
    """Message types making up the reply to one kind of request."""

    name: str
    terminal: frozenset[int]
    partial: frozenset[int] = frozenset()
    key: KeyFunc | None = None  # sub-key of a partial within the accumulator


@dataclass(frozen=True)
class StreamReply:
    """Merged result of a streaming request."""

    items: dict[Hashable, Message]
    end: Message

    def messages(self) -> list[Message]:
        return list(self.items.values())


@dataclass
class PendingRequest:
    """A request waiting for its terminal message."""

    request_id: int
    future: Future
    family: ReplyFamily
    accumulator: dict[Hashable, Message] | None = None
    partials: int = field(default=0, compare=False)

    @property
    def streaming(self) -> bool:
        return self.accumulator is not None


class RequestCorrelator:
    """Owns the pending-request table of one connection."""

    def __init__(
        self,
        on_event: EventSink | None = None,
        terminal_types: Iterable[int] = (),
        error_types: Iterable[int] = (),
    ):
        """Initialize correlator.

        Args:
            on_event: Receives every message not consumed by a pending request
            terminal_types: Type ids that end a reply in any known family; a
                terminal message with no pending request is logged and dropped
            error_types: Type ids that fail the pending request they name
        """
        self.on_event = on_event or _log_event
        self.terminal_types = frozenset(terminal_types)
        self.error_types = frozenset(error_types)
        self._pending: dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: int) -> bool:
        return request_id in self._pending

    def register(self, request_id: int, future: Future, family: ReplyFamily) -> PendingRequest:
        """Record a request whose reply is a single terminal message."""
        return self._add(PendingRequest(request_id, future, family))

    def register_streaming(self, request_id: int, future: Future, family: ReplyFamily) -> PendingRequest:
        """Record a request whose reply is partial messages followed by a terminal one."""
        return self._add(PendingRequest(request_id, future, family, accumulator={}))

    def _add(self, pending: PendingRequest) -> PendingRequest:
        if pending.request_id in self._pending:
            raise ValueError(f"Request id {pending.request_id} is already pending")
        self._pending[pending.request_id] = pending
        return pending

    def discard(self, request_id: int) -> bool:
        """Forget a pending request without resuming its caller.

        Returns:
            True if an entry was removed
        """
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        logging.debug("Abandoned request %d (%s)", request_id, pending.family.name)
        return True

    def route(self, message: Message) -> None:
        """Deliver one decoded inbound message."""
        request_id = message.request_id
        pending = self._pending.get(request_id) if request_id is not None else None

        if pending is None:
            if message.type_id in self.terminal_types:
                logging.warning("Dropping %s for request %s: nothing is waiting for it", message.name, request_id)
                return
            self._emit(message)
            return

        if message.type_id in pending.family.terminal:
            del self._pending[request_id]
            if pending.streaming:
                result: Any = StreamReply(items=pending.accumulator, end=message)
            else:
                result = message
            resolve_future(pending.future, result)
        elif message.type_id in pending.family.partial and pending.streaming:
            self._accumulate(pending, message)
        elif message.type_id in self.error_types:
            del self._pending[request_id]
            error = GatewayError(request_id, message.get("error_code", 0), message.get("error_string", ""))
            fail_future(pending.future, error)
        else:
            self._emit(message)

    def fail_all(self, exc: ConnectionLost) -> None:
        """Fail every pending request, leaving the table empty."""
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            fail_future(entry.future, exc)

    def _accumulate(self, pending: PendingRequest, message: Message) -> None:
        key = pending.family.key(message) if pending.family.key else pending.partials
        previous = pending.accumulator.get(key)
        if previous is not None and previous.fields != message.fields:
            logging.warning(
                "Overwriting %s entry %r for request %d - old: %r - new: %r",
                pending.family.name,
                key,
                pending.request_id,
                previous.fields,
                message.fields,
            )
        pending.accumulator[key] = message
        pending.partials += 1

    def _emit(self, message: Message) -> None:
        try:
            self.on_event(message)
        except Exception:
            logging.exception("Event handler failed on %s", message.name)


def resolve_future(future: Future, result: Any) -> None:
    # A cancelled future means the caller stopped listening.
    if future.set_running_or_notify_cancel():
        future.set_result(result)
    else:
        logging.debug("Reply dropped: caller cancelled the wait")


def fail_future(future: Future, exc: BaseException) -> None:
    if future.set_running_or_notify_cancel():
        future.set_exception(exc)


def _log_event(message: Message) -> None:
    logging.debug("Unsolicited %s: %r", message.name, message.fields)
