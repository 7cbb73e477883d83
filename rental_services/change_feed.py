"""
rental_services.change_feed -- Record change notifications and read cache.

Responsibility:
    Publish/subscribe for record changes, and a booking read cache that
    drops an entry whenever any record of that booking changes.

Architecture position:
    Services layer.  In-process only; a database-backed feed implements
    the same ``ChangeFeed`` protocol.

Invariants enforced:
    - Subscribers are called in subscription order.
    - A change to any table invalidates the cached view of its booking.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Protocol, TypeVar, runtime_checkable
from uuid import UUID

from rental_kernel.logging_config import get_logger

logger = get_logger("services.change_feed")

T = TypeVar("T")


class ChangeOperation(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    record_id: UUID
    booking_id: UUID
    operation: ChangeOperation


ChangeHandler = Callable[[ChangeEvent], None]


@runtime_checkable
class ChangeFeed(Protocol):
    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        ...

    def publish(self, event: ChangeEvent) -> None:
        ...


class InMemoryChangeFeed:
    """Synchronous in-process change feed."""

    def __init__(self) -> None:
        self._handlers: list[ChangeHandler] = []

    def subscribe(self, handler: ChangeHandler) -> Callable[[], None]:
        """Register a handler.  Returns a callable that unsubscribes it."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        logger.debug(
            "change_published",
            extra={
                "table": event.table,
                "record_id": str(event.record_id),
                "operation": event.operation.value,
            },
        )
        for handler in list(self._handlers):
            handler(event)


class BookingReadCache(Generic[T]):
    """Per-booking cache invalidated by the change feed."""

    def __init__(self, feed: ChangeFeed) -> None:
        self._entries: dict[UUID, T] = {}
        self._unsubscribe = feed.subscribe(self._on_change)

    def get(self, booking_id: UUID) -> T | None:
        return self._entries.get(booking_id)

    def put(self, booking_id: UUID, value: T) -> None:
        self._entries[booking_id] = value

    def invalidate(self, booking_id: UUID) -> None:
        self._entries.pop(booking_id, None)

    def close(self) -> None:
        self._unsubscribe()
        self._entries.clear()

    def __contains__(self, booking_id: object) -> bool:
        return booking_id in self._entries

    def _on_change(self, event: ChangeEvent) -> None:
        if event.booking_id in self._entries:
            logger.debug(
                "read_cache_invalidated",
                extra={"booking_id": str(event.booking_id), "table": event.table},
            )
        self.invalidate(event.booking_id)
