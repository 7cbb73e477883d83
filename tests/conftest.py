"""
Pytest fixtures for the rental return test suite.

Provides:
- In-memory SQLite engine and a ReturnRecordStore per test
- DeterministicClock, static identity, tmp-path object storage, change feed
- Booking factory
- captured_logs for asserting on structured log output

Environment Variables:
- DATABASE_URL: SQLAlchemy URL to run the store tests against another
  backend (e.g. postgresql+psycopg://...).  Defaults to in-memory SQLite.
"""

import json
import logging
import os
from io import StringIO
from uuid import UUID

import pytest

from rental_config import ReturnPolicy
from rental_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from rental_kernel.domain.booking import Booking, InspectionMetrics, PhotoPhase
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_kernel.services.return_store import ReturnRecordStore
from rental_services.change_feed import InMemoryChangeFeed
from rental_services.identity import StaticIdentity
from rental_services.photo_storage import LocalObjectStorage
from rental_services.return_orchestrator import ReturnOrchestrator
from tests.factories import NOW, TEST_ACTOR_ID, build_booking


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, orchestrator):
            orchestrator.complete_step(...)
            logs = captured_logs()
            assert any(r["message"] == "return_step_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture
def engine():
    """Fresh engine and schema per test."""
    eng = init_engine_from_url(get_database_url())
    create_tables()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def store(session_factory) -> ReturnRecordStore:
    return ReturnRecordStore(session_factory)


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(NOW)


@pytest.fixture
def actor_id() -> UUID:
    return TEST_ACTOR_ID


@pytest.fixture
def identity(actor_id) -> StaticIdentity:
    return StaticIdentity(actor_id)


@pytest.fixture
def photo_storage(tmp_path, policy) -> LocalObjectStorage:
    return LocalObjectStorage.for_policy(tmp_path / "objects", policy)


@pytest.fixture
def feed() -> InMemoryChangeFeed:
    return InMemoryChangeFeed()


@pytest.fixture
def policy() -> ReturnPolicy:
    return ReturnPolicy()


@pytest.fixture
def orchestrator(store, identity, photo_storage, policy, clock, feed) -> ReturnOrchestrator:
    return ReturnOrchestrator(
        store=store,
        identity=identity,
        storage=photo_storage,
        policy=policy,
        clock=clock,
        change_feed=feed,
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_booking(store):
    """
    Factory fixture that persists a booking and returns its DTO.

    ``pickup_odometer`` / ``pickup_fuel`` also record pickup metrics.
    """

    def _make(
        *,
        pickup_odometer: int | None = None,
        pickup_fuel: int | None = None,
        **kwargs,
    ) -> Booking:
        booking = store.add_booking(build_booking(**kwargs))
        if pickup_odometer is not None or pickup_fuel is not None:
            store.record_inspection_metrics(
                InspectionMetrics(
                    booking_id=booking.id,
                    phase=PhotoPhase.PICKUP,
                    odometer=pickup_odometer,
                    fuel_level=pickup_fuel,
                    recorded_at=booking.start_at,
                )
            )
        return booking

    return _make
