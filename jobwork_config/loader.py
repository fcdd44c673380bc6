"""
Configuration Loader (``jobwork_config.loader``).

Responsibility
--------------
Loads YAML files and parses the merged document into the typed
``jobwork_config.schema`` dataclasses.  The single public entry point
for runtime config is ``jobwork_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  merged document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown strategy or non-mapping sections  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from jobwork_config.schema import LedgerConfig, LedgerSettings, NumberingConfig
from jobwork_kernel.domain.numbering import NumberingStrategy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the top level is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursive merge; mappings merge key by key, everything else replaces."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_documents(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Configuration section '{name}' must be a mapping")
    return section


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    defaults = NumberingConfig()
    raw_strategy = data.get("strategy", defaults.strategy.value)
    try:
        strategy = NumberingStrategy(raw_strategy)
    except ValueError:
        raise ValueError(
            f"Unknown numbering strategy: {raw_strategy!r}"
        ) from None
    return NumberingConfig(
        strategy=strategy,
        prefix=str(data.get("prefix", defaults.prefix)),
        fetch_limit=int(data.get("fetch_limit", defaults.fetch_limit)),
        max_attempts=int(data.get("max_attempts", defaults.max_attempts)),
        fy_start_month=int(data.get("fy_start_month", defaults.fy_start_month)),
    )


def parse_ledger(data: dict[str, Any]) -> LedgerSettings:
    defaults = LedgerSettings()
    return LedgerSettings(
        transaction_attempts=int(
            data.get("transaction_attempts", defaults.transaction_attempts)
        ),
        validate_quantities=bool(
            data.get("validate_quantities", defaults.validate_quantities)
        ),
    )


def parse_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse a merged configuration document."""
    return LedgerConfig(
        numbering=parse_numbering(_section(data, "numbering")),
        ledger=parse_ledger(_section(data, "ledger")),
        database_url=str(data.get("database_url", LedgerConfig().database_url)),
        checksum=compute_checksum(data),
    )
