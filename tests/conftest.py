"""
Shared fixtures for the arby test-suite
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from arby.config import parse_config
from arby.context import RunContext
from arby.logger import create_loggers
from tests.helpers import FakeXudClient

RAW_CONFIG = {
    "LOG_LEVEL": "debug",
    "DATA_DIR": "/tmp/arby-test",
    "OPENDEX_CERT_PATH": "/tmp/arby-test/tls.cert",
    "OPENDEX_RPC_HOST": "localhost",
    "OPENDEX_RPC_PORT": 8080,
    "MARGIN": "0.02",
    "BASEASSET": "BTC",
    "QUOTEASSET": "DAI",
    "TEST_CENTRALIZED_EXCHANGE_BASEASSET_BALANCE": "10",
    "TEST_CENTRALIZED_EXCHANGE_QUOTEASSET_BALANCE": "1000",
}


@pytest.fixture
def raw_config():
    return dict(RAW_CONFIG)


@pytest.fixture
def config(raw_config):
    return parse_config(raw_config, environ={})


@pytest.fixture
def loggers():
    # console only, nothing written under DATA_DIR
    return create_loggers("DEBUG")


@pytest.fixture
def mock_cex():
    """ccxt-like exchange with async methods"""
    cex = Mock()
    cex.markets = {"BTC/DAI": {}}
    cex.load_markets = AsyncMock(return_value=cex.markets)
    cex.fetch_balance = AsyncMock(return_value={"free": {"BTC": 2.5, "DAI": 500}})
    cex.fetch_open_orders = AsyncMock(return_value=[])
    cex.cancel_order = AsyncMock()
    cex.close = AsyncMock()
    return cex


@pytest.fixture
def ctx(config, loggers, mock_cex):
    return RunContext(config=config, loggers=loggers, cex=mock_cex, shutdown=asyncio.Event())


@pytest.fixture
def xud():
    return FakeXudClient()
