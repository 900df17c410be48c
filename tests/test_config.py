"""Tests for indexer configuration loading."""

import pytest

from didmirror.config import load_settings
from didmirror.errors import ConfigError

REGISTRY = "0x" + "1f" * 20
STORAGE = "0x" + "2e" * 20


class TestLoadSettings:

    def test_defaults(self):
        settings = load_settings(["--ledger.rpc_url", "http://node:8545"], environ={})
        assert settings.ledger.rpc_url == "http://node:8545"
        assert settings.ledger.identity_address is None
        assert settings.indexer.lookback_window == 10_000
        assert settings.indexer.reconcile_interval == 300.0
        assert settings.store.backend == "filesystem"

    def test_cli_flags(self):
        settings = load_settings([
            "--ledger.rpc_url", "http://node:8545",
            "--ledger.identity_address", REGISTRY.upper().replace("0X", "0x"),
            "--indexer.lookback_window", "500",
            "--indexer.batch_size", "100",
            "--store.backend", "sql",
            "--store.database_url", "sqlite+aiosqlite:///index.db",
        ], environ={})
        assert settings.ledger.identity_address == REGISTRY
        assert settings.indexer.lookback_window == 500
        assert settings.indexer.batch_size == 100
        assert settings.store.database_url == "sqlite+aiosqlite:///index.db"

    def test_env_overrides_cli(self):
        settings = load_settings(
            ["--ledger.rpc_url", "http://cli:8545", "--indexer.reconcile_interval", "60"],
            environ={
                "DIDMIRROR_LEDGER__RPC_URL": "http://env:8545",
                "DIDMIRROR_INDEXER__RECONCILE_INTERVAL": "120",
            },
        )
        assert settings.ledger.rpc_url == "http://env:8545"
        assert settings.indexer.reconcile_interval == 120.0

    def test_legacy_variables_as_fallback(self):
        settings = load_settings([], environ={
            "RPC_URL": "http://legacy:8545",
            "DID_REGISTRY_ADDRESS": REGISTRY,
            "DID_STORAGE_ADDRESS": STORAGE,
        })
        assert settings.ledger.rpc_url == "http://legacy:8545"
        assert settings.ledger.identity_address == REGISTRY
        assert settings.ledger.data_address == STORAGE

    def test_cli_beats_legacy(self):
        settings = load_settings(
            ["--ledger.rpc_url", "http://cli:8545"],
            environ={"RPC_URL": "http://legacy:8545"},
        )
        assert settings.ledger.rpc_url == "http://cli:8545"

    def test_empty_address_treated_as_unset(self):
        settings = load_settings(["--ledger.rpc_url", "http://node"], environ={"DID_STORAGE_ADDRESS": ""})
        assert settings.ledger.data_address is None


class TestInvalidSettings:

    def test_missing_rpc_url(self):
        with pytest.raises(ConfigError, match="rpc_url"):
            load_settings([], environ={})

    def test_bad_address(self):
        with pytest.raises(ConfigError):
            load_settings(["--ledger.rpc_url", "http://node", "--ledger.identity_address", "0x1234"], environ={})

    def test_sql_backend_needs_url(self):
        with pytest.raises(ConfigError, match="database_url"):
            load_settings(["--ledger.rpc_url", "http://node", "--store.backend", "sql"], environ={})

    def test_unknown_backend(self):
        with pytest.raises(ConfigError):
            load_settings(["--ledger.rpc_url", "http://node", "--store.backend", "redis"], environ={})

    def test_non_numeric_env(self):
        with pytest.raises(ConfigError):
            load_settings(["--ledger.rpc_url", "http://node"], environ={"DIDMIRROR_INDEXER__BATCH_SIZE": "lots"})

    def test_zero_batch_size(self):
        with pytest.raises(ConfigError):
            load_settings(["--ledger.rpc_url", "http://node", "--indexer.batch_size", "0"], environ={})
