# arby/opendex.py
import asyncio
import ssl
from decimal import Decimal, ROUND_DOWN
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, TypeVar

import aiohttp

from .context import RunContext
from .errors import OpenDexError
from .models import AssetBalances, OpenDexAssets, OpenDexOrder, OrderSide, TradeInfo
from .order_filter import should_create_order

T = TypeVar("T")

SATOSHIS_PER_COIN = Decimal(100_000_000)
OPENDEX_ASSETS_INTERVAL = 10  # seconds
REQUEST_TIMEOUT = 30  # seconds

# 5xx from the proxy, and the gRPC codes xud answers with while starting or syncing
RECOVERABLE_HTTP_STATUSES = {502, 503, 504}
RECOVERABLE_GRPC_CODES = {4, 14}  # DEADLINE_EXCEEDED, UNAVAILABLE
OPENDEX_RETRY_ATTEMPTS = 5
OPENDEX_RETRY_DELAY = 5  # seconds

BUY_ORDER_ID = "arby-buy-order"
SELL_ORDER_ID = "arby-sell-order"


def to_satoshis(amount: Decimal) -> int:
    return int((amount * SATOSHIS_PER_COIN).to_integral_value(rounding=ROUND_DOWN))


def from_satoshis(amount) -> Decimal:
    return Decimal(str(amount or 0)) / SATOSHIS_PER_COIN


class XudClient:
    """
    Thin async client for the xud web proxy (REST over the gRPC API).
    Amounts on the wire are integer satoshis; this class speaks Decimal coins.
    """
    def __init__(self, host: str, port: int, cert_path: str, session: aiohttp.ClientSession = None):
        self.base_url = f"https://{host}:{port}/v1"
        self.cert_path = cert_path
        self._session = session

    def _ssl_context(self) -> ssl.SSLContext:
        # xud signs its own cert for localhost; trust exactly that cert
        context = ssl.create_default_context(cafile=self.cert_path)
        context.check_hostname = False
        return context

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            connector = aiohttp.TCPConnector(ssl=self._ssl_context())
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT),
            )
        return self._session

    async def _request(self, method: str, path: str, payload: Optional[dict] = None,
                       params: Optional[dict] = None) -> Dict[str, Any]:
        session = await self._get_session()
        url = f"{self.base_url}/{path}"
        try:
            async with session.request(method, url, json=payload, params=params) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                if resp.status >= 400:
                    raise self._response_error(method, path, resp.status, resp.reason, body)
                if body is None and resp.status != 204:
                    raise OpenDexError(f"{method} /{path} returned a non-JSON body")
                return body or {}
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            raise OpenDexError(f"{method} /{path} failed: {e!r}", recoverable=True) from e
        except aiohttp.ClientError as e:
            raise OpenDexError(f"{method} /{path} failed: {e}") from e

    @staticmethod
    def _response_error(method: str, path: str, status: int, reason, body) -> OpenDexError:
        body = body if isinstance(body, dict) else {}
        message = body.get('message') or body.get('error') or reason
        recoverable = (
            status in RECOVERABLE_HTTP_STATUSES
            or body.get('code') in RECOVERABLE_GRPC_CODES
        )
        return OpenDexError(f"{method} /{path} failed ({status}): {message}", recoverable=recoverable)

    async def get_balance(self, currency: str) -> Decimal:
        body = await self._request("GET", "balance", params={'currency': currency})
        balance = body.get('balances', {}).get(currency, {})
        return from_satoshis(balance.get('channel_balance'))

    async def trading_limits(self, currency: str) -> Dict[str, Decimal]:
        body = await self._request("GET", "tradinglimits", params={'currency': currency})
        limits = body.get('limits', {}).get(currency, {})
        return {
            'max_sell': from_satoshis(limits.get('max_sell')),
            'max_buy': from_satoshis(limits.get('max_buy')),
        }

    async def list_orders(self, pair_id: str) -> List[Dict[str, Any]]:
        body = await self._request("GET", "orders", params={'pair_id': pair_id, 'owner': 'OWN'})
        orders = body.get('orders', {}).get(pair_id, {})
        return list(orders.get('buy_orders', [])) + list(orders.get('sell_orders', []))

    async def place_order(self, order: OpenDexOrder) -> Dict[str, Any]:
        return await self._request("POST", "placeordersync", {
            'pair_id': order.pair_id,
            'side': order.side.name,
            'price': float(order.price),
            'quantity': str(to_satoshis(order.quantity)),
            'order_id': order.order_id,
        })

    async def remove_order(self, order_id: str) -> None:
        await self._request("POST", "removeorder", {'order_id': order_id})

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None


def get_xud_client(ctx: RunContext) -> XudClient:
    config = ctx.config
    return XudClient(config.opendex_rpc_host, config.opendex_rpc_port, config.opendex_cert_path)


async def retry_recoverable(call: Callable[[], Awaitable[T]], logger,
                            attempts: int = OPENDEX_RETRY_ATTEMPTS,
                            delay: float = OPENDEX_RETRY_DELAY) -> T:
    """
    Awaits `call()`, retrying recoverable OpenDexErrors up to `attempts` times
    with `delay` seconds between tries. Anything else propagates at once.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await call()
        except OpenDexError as e:
            if not e.recoverable or attempt == attempts:
                raise
            logger.warning(f"OpenDEX unavailable ({e}), retry {attempt}/{attempts - 1} in {delay}s")
            await asyncio.sleep(delay)


async def fetch_opendex_assets(ctx: RunContext, client: XudClient) -> OpenDexAssets:
    base, quote = ctx.config.base_asset, ctx.config.quote_asset
    tasks = [
        asyncio.create_task(client.get_balance(base)),
        asyncio.create_task(client.get_balance(quote)),
        asyncio.create_task(client.trading_limits(base)),
        asyncio.create_task(client.trading_limits(quote)),
    ]
    try:
        base_balance, quote_balance, base_limits, quote_limits = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return OpenDexAssets(
        balances=AssetBalances(base=base_balance, quote=quote_balance),
        max_sell=base_limits['max_sell'],
        max_buy=quote_limits['max_buy'],
    )


async def opendex_assets(ctx: RunContext, client: XudClient,
                         interval: float = OPENDEX_ASSETS_INTERVAL,
                         retry_delay: float = OPENDEX_RETRY_DELAY) -> AsyncIterator[OpenDexAssets]:
    logger = ctx.loggers.opendex
    config = ctx.config
    while True:
        assets = await retry_recoverable(
            lambda: fetch_opendex_assets(ctx, client), logger, delay=retry_delay,
        )
        logger.info(
            f"{config.base_asset} balance {assets.balances.base} (max sell {assets.max_sell}) | "
            f"{config.quote_asset} balance {assets.balances.quote} (max buy {assets.max_buy})"
        )
        yield assets
        await asyncio.sleep(interval)


def trade_info_to_opendex_orders(info: TradeInfo, pair_id: str) -> Dict[OrderSide, OpenDexOrder]:
    """
    Sell base above the CEX price and buy base below it.
    The buy order quantity is in base units, converted from the quote budget.
    """
    buy_price = info.buy_price
    buy_quantity = info.quote_quantity / buy_price if buy_price > 0 else Decimal(0)
    return {
        OrderSide.BUY: OpenDexOrder(
            side=OrderSide.BUY,
            price=buy_price,
            quantity=buy_quantity,
            pair_id=pair_id,
            order_id=BUY_ORDER_ID,
        ),
        OrderSide.SELL: OpenDexOrder(
            side=OrderSide.SELL,
            price=info.sell_price,
            quantity=info.base_quantity,
            pair_id=pair_id,
            order_id=SELL_ORDER_ID,
        ),
    }


async def remove_opendex_orders(ctx: RunContext, client: XudClient) -> None:
    """
    Removes this agent's open orders for the configured pair. Nothing open is fine.
    """
    logger = ctx.loggers.opendex
    pair_id = ctx.config.pair_id
    orders = await client.list_orders(pair_id)
    for order in orders:
        order_id = order.get('local_id') or order.get('id')
        await client.remove_order(order_id)
        logger.info(f"Removed {pair_id} order {order_id}")


def sell_order_eligible(order: OpenDexOrder, base_asset: str) -> bool:
    return order.price > 0 and should_create_order(base_asset)(order.quantity)


def buy_order_eligible(order: OpenDexOrder, base_asset: str, quote_asset: str) -> bool:
    """
    The base quantity that goes out and the quote it costs must both clear their minimums.
    """
    if order.price <= 0:
        return False
    return (
        should_create_order(base_asset)(order.quantity)
        and should_create_order(quote_asset)(order.quantity * order.price)
    )


async def _replace_opendex_orders(ctx: RunContext, client: XudClient, info: TradeInfo) -> None:
    logger = ctx.loggers.opendex
    config = ctx.config
    orders = trade_info_to_opendex_orders(info, config.pair_id)
    buy, sell = orders[OrderSide.BUY], orders[OrderSide.SELL]

    await remove_opendex_orders(ctx, client)

    if sell_order_eligible(sell, config.base_asset):
        await client.place_order(sell)
        logger.info(f"Placed SELL {sell.quantity} {config.base_asset} @ {sell.price}")
    else:
        logger.info(f"Skipping SELL {sell.quantity} {config.base_asset} @ {sell.price}: below the minimum")

    if buy_order_eligible(buy, config.base_asset, config.quote_asset):
        await client.place_order(buy)
        logger.info(f"Placed BUY {buy.quantity} {config.base_asset} @ {buy.price}")
    else:
        logger.info(f"Skipping BUY {buy.quantity} {config.base_asset} @ {buy.price}: below the minimum")


async def create_opendex_orders(ctx: RunContext, client: XudClient, info: TradeInfo,
                                retry_delay: float = OPENDEX_RETRY_DELAY) -> bool:
    """
    Replaces our OpenDEX orders with ones sized from the latest TradeInfo.
    Orders below the venue minimum are skipped, not sent. A node that is
    briefly unavailable is retried; the whole replacement runs again.
    """
    await retry_recoverable(
        lambda: _replace_opendex_orders(ctx, client, info), ctx.loggers.opendex, delay=retry_delay,
    )
    return True
