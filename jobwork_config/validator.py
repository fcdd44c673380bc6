"""
Configuration Validator (``jobwork_config.validator``).

Responsibility
--------------
Checks a parsed ``LedgerConfig`` for values the ledger cannot run with.
Returns every problem at once rather than stopping at the first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from jobwork_config.schema import LedgerConfig

_PREFIX_RE = re.compile(r"^[A-Z]{1,10}$")


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)


def validate_config(config: LedgerConfig) -> ConfigValidationResult:
    result = ConfigValidationResult()
    numbering = config.numbering
    ledger = config.ledger

    if not _PREFIX_RE.match(numbering.prefix):
        result.add_error(
            f"numbering.prefix must be 1-10 upper-case letters, got {numbering.prefix!r}"
        )
    if numbering.fetch_limit < 1:
        result.add_error("numbering.fetch_limit must be at least 1")
    if numbering.max_attempts < 1:
        result.add_error("numbering.max_attempts must be at least 1")
    if not 1 <= numbering.fy_start_month <= 12:
        result.add_error("numbering.fy_start_month must be between 1 and 12")

    if ledger.transaction_attempts < 1:
        result.add_error("ledger.transaction_attempts must be at least 1")

    if not config.database_url:
        result.add_error("database_url must not be empty")
    return result
