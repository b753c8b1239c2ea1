# arby/config.py
import logging
import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import AsyncIterator, Optional

import yaml

from .errors import ConfigError
from .order_filter import MINIMUM_ORDER_SIZE

DEFAULT_CONFIG_PATH = "config.yaml"

REQUIRED_FIELDS = (
    "DATA_DIR",
    "OPENDEX_CERT_PATH",
    "OPENDEX_RPC_HOST",
    "OPENDEX_RPC_PORT",
    "MARGIN",
    "BASEASSET",
    "QUOTEASSET",
    "TEST_CENTRALIZED_EXCHANGE_BASEASSET_BALANCE",
    "TEST_CENTRALIZED_EXCHANGE_QUOTEASSET_BALANCE",
)

OPTIONAL_FIELDS = {
    "LOG_LEVEL": "info",
    "LIVE_CEX": "false",
    "CEX": "binance",
    "CEX_API_KEY": "",
    "CEX_API_SECRET": "",
}

_TRUE_VALUES = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class Config:
    """
    Process configuration. Read once at startup, never mutated.
    """
    log_level: str
    data_dir: str
    opendex_cert_path: str
    opendex_rpc_host: str
    opendex_rpc_port: int
    margin: Decimal
    base_asset: str
    quote_asset: str
    test_cex_base_balance: Decimal
    test_cex_quote_balance: Decimal
    live_cex: bool
    cex: str
    cex_api_key: str
    cex_api_secret: str

    @property
    def pair_id(self) -> str:
        return f"{self.base_asset}/{self.quote_asset}"

    @property
    def cex_symbol(self) -> str:
        # ccxt unified symbols share the BASE/QUOTE form
        return self.pair_id

    @property
    def log_path(self) -> str:
        return os.path.join(self.data_dir, "arby.log")


def _decimal(name: str, raw) -> Decimal:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ConfigError(f"{name} must be a decimal number, got {raw!r}")
    if not value.is_finite() or value < 0:
        raise ConfigError(f"{name} must be a non-negative number, got {raw!r}")
    return value


def _merge_sources(raw: dict, environ) -> dict:
    merged = dict(OPTIONAL_FIELDS)
    for key, value in (raw or {}).items():
        merged[str(key).upper()] = value
    for key in (*REQUIRED_FIELDS, *OPTIONAL_FIELDS):
        if environ.get(key) is not None:
            merged[key] = environ[key]
    return merged


def parse_config(raw: dict, environ=None) -> Config:
    """
    Builds a validated Config from a mapping (usually the YAML file) with
    environment variables taking precedence over file values.
    """
    values = _merge_sources(raw, os.environ if environ is None else environ)

    missing = [k for k in REQUIRED_FIELDS if values.get(k) in (None, "")]
    if missing:
        raise ConfigError(f"Missing required config: {', '.join(missing)}")

    base = str(values["BASEASSET"]).upper()
    quote = str(values["QUOTEASSET"]).upper()
    if base == quote:
        raise ConfigError(f"BASEASSET and QUOTEASSET must differ, both are {base}")
    for asset in (base, quote):
        if asset not in MINIMUM_ORDER_SIZE:
            supported = ", ".join(MINIMUM_ORDER_SIZE)
            raise ConfigError(f"Unsupported asset {asset}. Supported: {supported}")

    margin = _decimal("MARGIN", values["MARGIN"])
    if margin >= 1:
        # buy price is the CEX price times (1 - margin)
        raise ConfigError(f"MARGIN must be below 1, got {values['MARGIN']!r}")

    log_level = str(values["LOG_LEVEL"]).upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ConfigError(f"Unknown LOG_LEVEL {values['LOG_LEVEL']!r}")

    try:
        port = int(values["OPENDEX_RPC_PORT"])
    except (TypeError, ValueError):
        raise ConfigError(f"OPENDEX_RPC_PORT must be an integer, got {values['OPENDEX_RPC_PORT']!r}")

    return Config(
        log_level=log_level,
        data_dir=str(values["DATA_DIR"]),
        opendex_cert_path=str(values["OPENDEX_CERT_PATH"]),
        opendex_rpc_host=str(values["OPENDEX_RPC_HOST"]),
        opendex_rpc_port=port,
        margin=margin,
        base_asset=base,
        quote_asset=quote,
        test_cex_base_balance=_decimal(
            "TEST_CENTRALIZED_EXCHANGE_BASEASSET_BALANCE",
            values["TEST_CENTRALIZED_EXCHANGE_BASEASSET_BALANCE"],
        ),
        test_cex_quote_balance=_decimal(
            "TEST_CENTRALIZED_EXCHANGE_QUOTEASSET_BALANCE",
            values["TEST_CENTRALIZED_EXCHANGE_QUOTEASSET_BALANCE"],
        ),
        live_cex=str(values["LIVE_CEX"]).strip().lower() in _TRUE_VALUES,
        cex=str(values["CEX"]).lower(),
        cex_api_key=str(values["CEX_API_KEY"] or ""),
        cex_api_secret=str(values["CEX_API_SECRET"] or ""),
    )


def load_config(path: str = DEFAULT_CONFIG_PATH) -> Config:
    raw = {}
    if os.path.exists(path):
        with open(path, "r") as f: raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return parse_config(raw)


async def config_source(path: str = DEFAULT_CONFIG_PATH, config: Optional[Config] = None) -> AsyncIterator[Config]:
    """
    Yields the configuration the agent should run with. One run per value.
    """
    yield config if config is not None else load_config(path)
