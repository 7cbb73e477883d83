"""
rental_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure return engines
    (rental_engines/) with the record store, object storage, the current
    staff identity, and the clock.  This is the only layer that holds a
    record store or reads wall-clock time.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

        rental_services/ -> rental_engines/  (allowed)
        rental_services/ -> rental_kernel/   (allowed)
        rental_engines/  -> rental_services/ (FORBIDDEN)
        rental_kernel/   -> rental_services/ (FORBIDDEN)

Invariants enforced:
    - Layer isolation: rental_kernel and rental_engines never import from
      this package.
    - DI transparency: the orchestrator receives its store, identity,
      storage, policy, clock, and change feed; it constructs none of the
      I/O collaborators itself.
"""

from rental_services.change_feed import (
    BookingReadCache,
    ChangeEvent,
    ChangeFeed,
    ChangeOperation,
    InMemoryChangeFeed,
)
from rental_services.identity import IdentityProvider, StaticIdentity, require_user
from rental_services.photo_storage import LocalObjectStorage, ObjectStorage, photo_key
from rental_services.return_orchestrator import ReturnOrchestrator, ReturnSession

__all__ = [
    "BookingReadCache",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeOperation",
    "IdentityProvider",
    "InMemoryChangeFeed",
    "LocalObjectStorage",
    "ObjectStorage",
    "ReturnOrchestrator",
    "ReturnSession",
    "StaticIdentity",
    "photo_key",
    "require_user",
]
