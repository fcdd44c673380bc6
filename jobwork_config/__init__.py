"""
jobwork_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.

Architecture position:
    Configuration -- YAML-driven settings.  This package sits above
    ``jobwork_kernel``; the kernel MUST NEVER import from
    ``jobwork_config``.  ``jobwork_config.bridges`` translates the parsed
    configuration into kernel service constructor arguments.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Validation before use: an invalid configuration is never returned.
    - Deterministic checksum: the same merged document always produces the
      same ``LedgerConfig.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- unknown strategy or failed validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``JOBWORK_CONFIG_TRACE`` log entry with the checksum and the
    numbering strategy in force.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from jobwork_config.loader import load_yaml_file, merge_documents, parse_config
from jobwork_config.schema import LedgerConfig, LedgerSettings, NumberingConfig
from jobwork_config.validator import validate_config

_logger = logging.getLogger("jobwork_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"
CONFIG_ENV_VAR = "JOBWORK_CONFIG"


def get_active_config(config_path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Contract:
        Loads ``defaults.yaml`` and merges an override file on top.  The
        override is ``config_path`` when given, else the file named by the
        ``JOBWORK_CONFIG`` environment variable, else none.

    Guarantees:
        - The returned ``LedgerConfig`` has passed ``validate_config``.
        - A ``JOBWORK_CONFIG_TRACE`` log entry is emitted on every call.

    Non-goals:
        - Does NOT cache across calls.

    Raises:
        FileNotFoundError: If the override file does not exist.
        ValueError: If parsing or validation fails.
    """
    document = load_yaml_file(DEFAULTS_PATH)

    override = config_path or os.environ.get(CONFIG_ENV_VAR)
    if override:
        document = merge_documents(document, load_yaml_file(Path(override)))

    config = parse_config(document)

    validation = validate_config(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )

    _logger.info(
        "JOBWORK_CONFIG_TRACE",
        extra={
            "trace_type": "JOBWORK_CONFIG_TRACE",
            "checksum": config.checksum,
            "override_path": str(override) if override else None,
            "numbering_strategy": config.numbering.strategy.value,
            "transaction_attempts": config.ledger.transaction_attempts,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULTS_PATH",
    "LedgerConfig",
    "LedgerSettings",
    "NumberingConfig",
    "get_active_config",
]
