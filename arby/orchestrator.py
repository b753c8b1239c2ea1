# arby/orchestrator.py
import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable

from .cleanup import cleanup as cleanup_orders
from .config import Config
from .context import RunContext
from .logger import Loggers, create_loggers
from .market_engine import close_cex, init_cex
from .models import TradingResult
from .trade import run_trading


def get_loggers(config: Config) -> Loggers:
    return create_loggers(config.log_level, config.log_path)


def log_config(config: Config, logger: logging.Logger) -> None:
    secret = "********" if config.cex_api_secret else ""
    logger.info(f"""Running with config:
LIVE_CEX: {config.live_cex}
LOG_LEVEL: {config.log_level}
DATA_DIR: {config.data_dir}
OPENDEX_CERT_PATH: {config.opendex_cert_path}
OPENDEX_RPC_HOST: {config.opendex_rpc_host}
OPENDEX_RPC_PORT: {config.opendex_rpc_port}
CEX: {config.cex}
CEX_API_KEY: {config.cex_api_key}
CEX_API_SECRET: {secret}
MARGIN: {config.margin}
BASEASSET: {config.base_asset}
QUOTEASSET: {config.quote_asset}
TEST_CENTRALIZED_EXCHANGE_BASEASSET_BALANCE: {config.test_cex_base_balance}
TEST_CENTRALIZED_EXCHANGE_QUOTEASSET_BALANCE: {config.test_cex_quote_balance}""")


async def run_arby(config: Config,
                   shutdown: asyncio.Event,
                   get_loggers: Callable[[Config], Loggers] = get_loggers,
                   init_cex: Callable[..., Awaitable] = init_cex,
                   trade: Callable[[RunContext], Awaitable[TradingResult]] = run_trading,
                   cleanup: Callable[[RunContext], Awaitable[None]] = cleanup_orders,
                   close_cex: Callable[..., Awaitable] = close_cex) -> TradingResult:
    """
    One run: init -> trading -> cleanup.

    A CEX init failure raises straight away; no orders can exist yet.
    Cleanup runs exactly once after trading, whatever ended it, and only
    its own failure reaches the caller.
    """
    loggers = get_loggers(config)
    cex = await init_cex(config, loggers)
    ctx = RunContext(config=config, loggers=loggers, cex=cex, shutdown=shutdown)
    try:
        loggers.main.info("Starting. Hello, Arby.")
        log_config(config, loggers.main)

        result = await trade(ctx)
        if result.failed:
            loggers.main.error(f"Unrecoverable error. Cleaning up. ({result.error!r})")
        else:
            loggers.main.info(f"Trading ended ({result.outcome.value}). Cleaning up.")

        await cleanup(ctx)
    finally:
        await close_cex(cex)
    return result


async def start_arby(config_source: AsyncIterator[Config], shutdown: asyncio.Event, **run_kwargs) -> None:
    """
    Starts one run per configuration value and waits for all of them.
    Every run is allowed to reach its cleanup before the first failure is raised.
    """
    runs = []
    async for config in config_source:
        runs.append(asyncio.create_task(run_arby(config, shutdown, **run_kwargs)))

    results = await asyncio.gather(*runs, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
