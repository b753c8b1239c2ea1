# arby/websocket_engine.py
import asyncio
import json
from decimal import Decimal
from typing import AsyncIterator, Optional

import aiohttp

from .context import RunContext

BINANCE_WS_URL = "wss://stream.binance.com:9443/ws"
RECONNECT_DELAY = 2  # seconds


def trade_stream_url(base_asset: str, quote_asset: str) -> str:
    # Format: ethbtc@trade
    return f"{BINANCE_WS_URL}/{base_asset.lower()}{quote_asset.lower()}@trade"


def parse_trade_price(raw: str) -> Optional[Decimal]:
    data = json.loads(raw)
    if data.get('e') != 'trade' or 'p' not in data:
        return None
    return Decimal(data['p'])


class BinancePriceStream:
    """
    Last traded price for one pair from the Binance public trade stream.
    A server-side close or error frame reconnects; exceptions propagate.
    """
    def __init__(self, base_asset: str, quote_asset: str, logger, session: aiohttp.ClientSession = None):
        self.url = trade_stream_url(base_asset, quote_asset)
        self.logger = logger
        self._session = session

    async def prices(self) -> AsyncIterator[Decimal]:
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            while True:
                async with session.ws_connect(self.url) as ws:
                    self.logger.info(f"Connected to {self.url}")
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            price = parse_trade_price(msg.data)
                            if price is None:
                                continue
                            self.logger.debug(f"Price {price}")
                            yield price
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            self.logger.warning(f"WS Error: {ws.exception()}")
                            break
                self.logger.info(f"Stream closed, reconnecting in {RECONNECT_DELAY}s")
                await asyncio.sleep(RECONNECT_DELAY)
        finally:
            if owns_session:
                await session.close()


def centralized_price(ctx: RunContext) -> AsyncIterator[Decimal]:
    config = ctx.config
    stream = BinancePriceStream(config.base_asset, config.quote_asset, ctx.loggers.centralized)
    return stream.prices()
