"""Indexer configuration.

Values come from, in order of precedence:
  1. ``DIDMIRROR_<SECTION>__<FIELD>`` environment variables
  2. command-line flags (``--<section>.<field>``)
  3. legacy deployment variables (``RPC_URL``, ``DID_REGISTRY_ADDRESS``,
     ``DID_STORAGE_ADDRESS``, ``DATABASE_URL``)
  4. model defaults
"""

from __future__ import annotations

import argparse
import os
import re
from typing import Any, Literal, Mapping

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from didmirror.errors import ConfigError

ENV_PREFIX = "DIDMIRROR"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

# (section, field) -> legacy environment variable
_LEGACY_ENV = {
    ("ledger", "rpc_url"): "RPC_URL",
    ("ledger", "identity_address"): "DID_REGISTRY_ADDRESS",
    ("ledger", "data_address"): "DID_STORAGE_ADDRESS",
    ("store", "database_url"): "DATABASE_URL",
}


class LedgerSettings(BaseModel):
    rpc_url: str = Field(min_length=1)
    identity_address: str | None = None
    data_address: str | None = None
    confirmations: int = Field(default=0, ge=0)

    @field_validator("identity_address", "data_address")
    @classmethod
    def _check_address(cls, value: str | None) -> str | None:
        if not value:
            return None
        if not _ADDRESS_RE.match(value):
            raise ValueError(f"not a 20-byte hex address: {value}")
        return value.lower()


class IndexerOptions(BaseModel):
    lookback_window: int = Field(default=10_000, ge=0)
    reconcile_interval: float = Field(default=300.0, gt=0)
    reconcile_timeout: float = Field(default=120.0, gt=0)
    batch_size: int = Field(default=2000, ge=1)
    poll_interval: float = Field(default=4.0, gt=0)
    rpc_timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=1)


class StoreSettings(BaseModel):
    backend: Literal["filesystem", "sql"] = "filesystem"
    data_dir: str = "didmirror/data"
    database_url: str | None = None

    @model_validator(mode="after")
    def _check_backend(self) -> StoreSettings:
        if self.backend == "sql" and not self.database_url:
            raise ValueError("store.database_url is required for the sql backend")
        return self


class IndexerSettings(BaseModel):
    ledger: LedgerSettings
    indexer: IndexerOptions = Field(default_factory=IndexerOptions)
    store: StoreSettings = Field(default_factory=StoreSettings)


_FLAGS: dict[str, dict[str, tuple[type, str]]] = {
    "ledger": {
        "rpc_url": (str, "JSON-RPC endpoint of the ledger node."),
        "identity_address": (str, "DID registry contract address."),
        "data_address": (str, "DID storage contract address."),
        "confirmations": (int, "Blocks behind head treated as final."),
    },
    "indexer": {
        "lookback_window": (int, "Blocks scanned on first start when no checkpoint exists."),
        "reconcile_interval": (float, "Seconds between reconciliation passes."),
        "reconcile_timeout": (float, "Seconds before one historical scan window is abandoned."),
        "batch_size": (int, "Blocks per historical log query."),
        "poll_interval": (float, "Seconds between live subscription polls."),
        "rpc_timeout": (float, "HTTP timeout for JSON-RPC calls."),
        "max_retries": (int, "Attempts per RPC call and per reconciliation tick."),
    },
    "store": {
        "backend": (str, "Document store backend: filesystem or sql."),
        "data_dir": (str, "Root directory of the filesystem store."),
        "database_url": (str, "SQLAlchemy URL of the sql store, e.g. sqlite+aiosqlite:///index.db"),
    },
}


def add_args(parser: argparse.ArgumentParser) -> None:
    """Register ``--<section>.<field>`` flags. Defaults live on the models."""
    for section, fields in _FLAGS.items():
        for name, (kind, help_text) in fields.items():
            parser.add_argument(f"--{section}.{name}", type=kind, default=None, help=help_text)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="DID ledger mirror indexer")
    add_args(parser)
    return parser


def settings_from_args(
    args: argparse.Namespace,
    environ: Mapping[str, str] | None = None,
) -> IndexerSettings:
    """Merge parsed flags with the environment. Raises ConfigError."""
    env = os.environ if environ is None else environ
    raw: dict[str, dict[str, Any]] = {}
    for section, fields in _FLAGS.items():
        values: dict[str, Any] = {}
        for name in fields:
            value = env.get(f"{ENV_PREFIX}_{section.upper()}__{name.upper()}") or None
            if value is None:
                value = getattr(args, f"{section}.{name}", None)
            if value is None and (section, name) in _LEGACY_ENV:
                value = env.get(_LEGACY_ENV[(section, name)]) or None
            if value is not None:
                values[name] = value
        raw[section] = values

    try:
        return IndexerSettings.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e


def load_settings(
    argv: list[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> IndexerSettings:
    args, _ = build_parser().parse_known_args(argv)
    return settings_from_args(args, environ)


__all__ = [
    "ENV_PREFIX",
    "IndexerOptions",
    "IndexerSettings",
    "LedgerSettings",
    "StoreSettings",
    "add_args",
    "build_parser",
    "load_settings",
    "settings_from_args",
]
