# arby/market_engine.py
import asyncio
from decimal import Decimal
from typing import AsyncIterator

import ccxt.async_support as ccxt

from .config import Config
from .context import RunContext
from .errors import CEXInitError
from .logger import Loggers
from .models import AssetBalances

CEX_BALANCE_INTERVAL = 30  # seconds


def get_exchange(config: Config) -> ccxt.Exchange:
    try:
        ex_class = getattr(ccxt, config.cex)
    except AttributeError:
        raise CEXInitError(f"Unknown exchange: {config.cex}")
    return ex_class({
        'apiKey': config.cex_api_key,
        'secret': config.cex_api_secret,
        'enableRateLimit': True,
        'options': {'defaultType': 'spot'},
    })


async def init_cex(config: Config, loggers: Loggers, get_exchange=get_exchange) -> ccxt.Exchange:
    """
    Connects to the centralized exchange and loads its markets.
    Raises CEXInitError on any failure; the client is closed before raising.
    """
    logger = loggers.centralized
    name = config.cex.upper()
    client = get_exchange(config)
    try:
        await client.load_markets()
        if config.cex_symbol not in client.markets:
            raise CEXInitError(f"{name} does not list {config.cex_symbol}")
        if config.live_cex:
            # Proves the keys are valid before any order goes out
            await client.fetch_balance()
    except CEXInitError:
        await client.close()
        raise
    except ccxt.PermissionDenied as e:
        logger.critical(f"{name} | PERMISSION DENIED: Key missing trading permissions.")
        await client.close()
        raise CEXInitError(f"{name} permission denied: {e}") from e
    except ccxt.AuthenticationError as e:
        logger.critical(f"{name} | AUTH FAILED: Invalid API Key or Secret.")
        await client.close()
        raise CEXInitError(f"{name} authentication failed: {e}") from e
    except ccxt.RequestTimeout as e:
        logger.error(f"{name} | TIMEOUT: Exchange API is slow or down.")
        await client.close()
        raise CEXInitError(f"{name} timed out: {e}") from e
    except ccxt.ExchangeNotAvailable as e:
        logger.error(f"{name} | MAINTENANCE: Exchange is currently offline.")
        await client.close()
        raise CEXInitError(f"{name} is not available: {e}") from e
    except Exception as e:
        logger.critical(f"{name} | UNKNOWN ERROR: {str(e)}")
        await client.close()
        raise CEXInitError(f"{name} init failed: {e}") from e

    logger.info(f"{name} | Markets loaded: {len(client.markets)} | Live balances: {config.live_cex}")
    return client


async def close_cex(cex) -> None:
    await cex.close()


async def fetch_cex_balances(ctx: RunContext) -> AssetBalances:
    balance = await ctx.cex.fetch_balance()
    free = balance.get('free', {})
    return AssetBalances(
        base=Decimal(str(free.get(ctx.config.base_asset) or 0)),
        quote=Decimal(str(free.get(ctx.config.quote_asset) or 0)),
    )


async def centralized_assets(ctx: RunContext, interval: float = CEX_BALANCE_INTERVAL) -> AsyncIterator[AssetBalances]:
    """
    CEX balances, sampled immediately and then every `interval` seconds.
    Without LIVE_CEX the configured test balances stand in for the real ones.
    """
    config = ctx.config
    logger = ctx.loggers.centralized
    while True:
        if config.live_cex:
            balances = await fetch_cex_balances(ctx)
        else:
            balances = AssetBalances(
                base=config.test_cex_base_balance,
                quote=config.test_cex_quote_balance,
            )
        logger.info(f"Base asset balance {balances.base} and quote asset balance {balances.quote}")
        yield balances
        await asyncio.sleep(interval)


async def remove_cex_orders(ctx: RunContext) -> None:
    """
    Cancels every open order for the configured pair. No open orders is not an error.
    """
    logger = ctx.loggers.centralized
    symbol = ctx.config.cex_symbol
    if not ctx.config.live_cex:
        # Test balances only, nothing was ever placed with these keys
        logger.info(f"Not live, no {symbol} orders to remove")
        return
    orders = await ctx.cex.fetch_open_orders(symbol)
    for order in orders:
        await ctx.cex.cancel_order(order['id'], symbol)
        logger.info(f"Cancelled {symbol} order {order['id']}")
    logger.info(f"Removed {len(orders)} open {symbol} orders")
