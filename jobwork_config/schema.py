"""
Configuration schema (``jobwork_config.schema``).

Responsibility
--------------
Frozen dataclasses describing the effective runtime configuration.
Pure data; parsing lives in ``loader`` and checks in ``validator``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from jobwork_kernel.domain.numbering import NumberingStrategy


@dataclass(frozen=True)
class NumberingConfig:
    """Voucher number allocation settings."""

    strategy: NumberingStrategy = NumberingStrategy.FINANCIAL_YEAR
    prefix: str = "MFV"
    fetch_limit: int = 100
    max_attempts: int = 5
    fy_start_month: int = 4


@dataclass(frozen=True)
class LedgerSettings:
    """Event ledger write-path settings."""

    transaction_attempts: int = 3
    validate_quantities: bool = True


@dataclass(frozen=True)
class LedgerConfig:
    """
    The effective configuration.

    ``checksum`` is the SHA-256 of the canonical JSON of the merged
    source document; identical documents give identical checksums.
    """

    numbering: NumberingConfig = field(default_factory=NumberingConfig)
    ledger: LedgerSettings = field(default_factory=LedgerSettings)
    database_url: str = "sqlite:///jobwork.db"
    checksum: str = ""
