"""
Config -> Kernel Bridges.

Functions that turn a ``LedgerConfig`` into wired kernel services.  These
live in jobwork_config (the producer) because the kernel must NEVER import
jobwork_config.

Usage:
    from jobwork_config import get_active_config
    from jobwork_config.bridges import build_ledger_service

    config = get_active_config()
    ledger = build_ledger_service(config, session_factory, SystemClock())
"""

from __future__ import annotations

import random

from sqlalchemy.orm import Session, sessionmaker

from jobwork_config.schema import LedgerConfig
from jobwork_kernel.domain.clock import Clock
from jobwork_kernel.services.voucher_ledger_service import VoucherLedgerService
from jobwork_kernel.services.voucher_number_service import (
    SqlVoucherNumberSource,
    VoucherNumberService,
    VoucherNumberSource,
)


def build_number_service(
    config: LedgerConfig,
    source: VoucherNumberSource,
    clock: Clock,
    rng: random.Random | None = None,
) -> VoucherNumberService:
    numbering = config.numbering
    return VoucherNumberService(
        source,
        clock,
        strategy=numbering.strategy,
        prefix=numbering.prefix,
        fetch_limit=numbering.fetch_limit,
        max_attempts=numbering.max_attempts,
        fy_start_month=numbering.fy_start_month,
        rng=rng,
    )


def build_ledger_service(
    config: LedgerConfig,
    session_factory: sessionmaker[Session],
    clock: Clock,
    rng: random.Random | None = None,
) -> VoucherLedgerService:
    """Ledger service with an SQL-backed number allocator."""
    numbers = build_number_service(
        config, SqlVoucherNumberSource(session_factory), clock, rng,
    )
    return VoucherLedgerService(
        session_factory,
        clock,
        number_service=numbers,
        transaction_attempts=config.ledger.transaction_attempts,
        validate_quantities=config.ledger.validate_quantities,
    )
