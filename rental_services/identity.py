"""
rental_services.identity -- Current staff user.

Responsibility:
    Structural protocol for whoever is signed in, plus a static provider
    for tests and scripts.  Authentication itself lives elsewhere.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
from uuid import UUID

from rental_kernel.exceptions import NotAuthenticatedError


@runtime_checkable
class IdentityProvider(Protocol):
    def current_user_id(self) -> UUID | None:
        ...


class StaticIdentity:
    """Identity provider that always returns the same user (or nobody)."""

    def __init__(self, user_id: UUID | None = None) -> None:
        self._user_id = user_id

    def current_user_id(self) -> UUID | None:
        return self._user_id

    def sign_in(self, user_id: UUID) -> None:
        self._user_id = user_id

    def sign_out(self) -> None:
        self._user_id = None


def require_user(identity: IdentityProvider) -> UUID:
    """Current user id, or NotAuthenticatedError."""
    user_id = identity.current_user_id()
    if user_id is None:
        raise NotAuthenticatedError()
    return user_id
