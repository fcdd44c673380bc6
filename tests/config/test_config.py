"""Tests for configuration loading, validation and the service bridges."""

import random
from dataclasses import fields, replace

import pytest
import yaml

from jobwork_config import CONFIG_ENV_VAR, get_active_config
from jobwork_config.bridges import build_ledger_service, build_number_service
from jobwork_config.loader import (
    compute_checksum,
    load_yaml_file,
    merge_documents,
    parse_config,
)
from jobwork_config.schema import LedgerConfig, LedgerSettings, NumberingConfig
from jobwork_config.validator import validate_config
from jobwork_kernel.domain.numbering import NumberingStrategy


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


def _write(tmp_path, name, document):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(document))
    return path


class TestDefaults:
    def test_shipped_defaults(self):
        config = get_active_config()
        assert config.numbering.strategy is NumberingStrategy.FINANCIAL_YEAR
        assert config.numbering.prefix == "MFV"
        assert config.numbering.fetch_limit == 100
        assert config.numbering.max_attempts == 5
        assert config.numbering.fy_start_month == 4
        assert config.ledger.transaction_attempts == 3
        assert config.ledger.validate_quantities is True
        assert len(config.checksum) == 64

    def test_ledger_settings_are_write_path_only(self):
        assert [f.name for f in fields(LedgerSettings)] == [
            "transaction_attempts", "validate_quantities",
        ]

    def test_trace_logged(self, captured_logs):
        config = get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "JOBWORK_CONFIG_TRACE"]
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["numbering_strategy"] == "financial_year"
        assert traces[-1]["override_path"] is None


class TestOverrides:
    def test_override_file_merges(self, tmp_path):
        path = _write(tmp_path, "site.yaml", {"numbering": {"strategy": "date_based"}})
        config = get_active_config(path)
        assert config.numbering.strategy is NumberingStrategy.DATE_BASED
        assert config.numbering.prefix == "MFV"

    def test_env_var_override(self, tmp_path, monkeypatch):
        path = _write(tmp_path, "env.yaml", {"ledger": {"transaction_attempts": 7}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert get_active_config().ledger.transaction_attempts == 7

    def test_argument_beats_env_var(self, tmp_path, monkeypatch):
        env = _write(tmp_path, "env.yaml", {"numbering": {"max_attempts": 2}})
        arg = _write(tmp_path, "arg.yaml", {"numbering": {"max_attempts": 9}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(env))
        assert get_active_config(arg).numbering.max_attempts == 9

    def test_missing_override_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_checksum_changes_with_content(self, tmp_path):
        path = _write(tmp_path, "site.yaml", {"numbering": {"fetch_limit": 50}})
        assert get_active_config(path).checksum != get_active_config().checksum


class TestInvalidConfiguration:
    @pytest.mark.parametrize("override,fragment", [
        ({"numbering": {"prefix": "mfv"}}, "numbering.prefix"),
        ({"numbering": {"fetch_limit": 0}}, "numbering.fetch_limit"),
        ({"numbering": {"fy_start_month": 13}}, "numbering.fy_start_month"),
        ({"ledger": {"transaction_attempts": 0}}, "ledger.transaction_attempts"),
        ({"database_url": ""}, "database_url"),
    ])
    def test_rejected(self, tmp_path, override, fragment):
        path = _write(tmp_path, "bad.yaml", override)
        with pytest.raises(ValueError, match=fragment):
            get_active_config(path)

    def test_unknown_strategy(self, tmp_path):
        path = _write(tmp_path, "bad.yaml", {"numbering": {"strategy": "random"}})
        with pytest.raises(ValueError, match="Unknown numbering strategy"):
            get_active_config(path)

    def test_every_error_reported(self):
        config = LedgerConfig(numbering=NumberingConfig(prefix="", max_attempts=0))
        result = validate_config(config)
        assert not result.is_valid
        assert len(result.errors) == 2

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_yaml_file(path)

    def test_non_mapping_section(self):
        with pytest.raises(ValueError, match="numbering"):
            parse_config({"numbering": ["financial_year"]})


class TestLoaderHelpers:
    def test_merge_is_recursive(self):
        base = {"numbering": {"prefix": "MFV", "fetch_limit": 100}, "database_url": "a"}
        merged = merge_documents(base, {"numbering": {"fetch_limit": 5}})
        assert merged == {"numbering": {"prefix": "MFV", "fetch_limit": 5}, "database_url": "a"}
        assert base["numbering"]["fetch_limit"] == 100

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": {"c": 2}}) == compute_checksum({"b": {"c": 2}, "a": 1})

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_yaml_file(path) == {}


class TestBridges:
    def test_number_service_follows_config(self, deterministic_clock):
        config = replace(
            LedgerConfig(),
            numbering=NumberingConfig(
                strategy=NumberingStrategy.SEQUENTIAL, prefix="JWV", max_attempts=2,
            ),
        )

        class EmptySource:
            def list_recent_voucher_numbers(self, limit):
                return []

            def voucher_number_exists(self, voucher_no):
                return False

        service = build_number_service(config, EmptySource(), deterministic_clock)
        assert service.strategy is NumberingStrategy.SEQUENTIAL
        assert service.max_attempts == 2
        assert service.next_available().voucher_no == "JWV20250722_0001"

    def test_ledger_service_round_trip(self, session_factory, deterministic_clock, kurta):
        ledger = build_ledger_service(
            get_active_config(), session_factory, deterministic_clock, rng=random.Random(1),
        )
        assert ledger.transaction_attempts == 3
        assert ledger.validate_quantities
        voucher = ledger.create_voucher(kurta, "admin-1")
        assert voucher.voucher_no == "MFV20250722_0001"
