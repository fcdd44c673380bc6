"""
Pytest fixtures for the job-work ledger test suite.

Provides:
- Structured logging capture
- A deterministic clock
- An in-memory SQLite database per test, tables created from the ORM metadata
- Wired ledger, numbering and selector instances
"""

import json
import logging
import random
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session, sessionmaker

from jobwork_kernel.db.engine import build_engine, create_tables
from jobwork_kernel.domain.clock import DeterministicClock
from jobwork_kernel.domain.voucher import ItemDetails
from jobwork_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from jobwork_kernel.selectors.voucher_selector import VoucherSelector
from jobwork_kernel.services.voucher_ledger_service import VoucherLedgerService
from jobwork_kernel.services.voucher_number_service import (
    SqlVoucherNumberSource,
    VoucherNumberService,
)


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
    Capture jobwork_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_receive(...)
            logs = captured_logs()
            assert any(r["message"] == "voucher_event_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("jobwork_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return sessionmaker(bind=db_engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    with session_factory() as s:
        yield s


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def number_service(session_factory, deterministic_clock) -> VoucherNumberService:
    return VoucherNumberService(
        SqlVoucherNumberSource(session_factory),
        deterministic_clock,
        rng=random.Random(7),
    )


@pytest.fixture
def ledger(session_factory, deterministic_clock, number_service) -> VoucherLedgerService:
    return VoucherLedgerService(
        session_factory,
        deterministic_clock,
        number_service=number_service,
    )


@pytest.fixture
def open_selector(session_factory):
    """Factory for a selector on a fresh session, so reads see later commits."""
    sessions: list[Session] = []

    def _open() -> VoucherSelector:
        s = session_factory()
        sessions.append(s)
        return VoucherSelector(s)

    yield _open

    for s in sessions:
        s.close()


@pytest.fixture
def kurta() -> ItemDetails:
    return ItemDetails(item_name="Kurta", initial_quantity=100, supplier_name="Supplier A")
