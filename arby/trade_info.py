# arby/trade_info.py
import asyncio
from contextlib import aclosing
from decimal import Decimal
from typing import AsyncIterator, Tuple

from .config import Config
from .models import AssetBalances, OpenDexAssets, TradeInfo

_MISSING = object()
_DONE = object()


async def _pump(index: int, source: AsyncIterator, queue: asyncio.Queue) -> None:
    try:
        async for value in source:
            await queue.put((index, value, None))
    except Exception as e:
        await queue.put((index, None, e))
    else:
        await queue.put((index, _DONE, None))
    finally:
        aclose = getattr(source, 'aclose', None)
        if aclose is not None:
            await aclose()


async def combine_latest(*sources: AsyncIterator) -> AsyncIterator[Tuple]:
    """
    Once every source has produced a value, yields the latest value of each
    whenever any of them produces a new one. The first source error is raised.
    Ends when all sources end, or when one ends before ever producing a value.
    """
    queue: asyncio.Queue = asyncio.Queue()
    tasks = [asyncio.create_task(_pump(i, s, queue)) for i, s in enumerate(sources)]
    latest = [_MISSING] * len(sources)
    running = len(sources)
    try:
        while running:
            index, value, error = await queue.get()
            if error is not None:
                raise error
            if value is _DONE:
                running -= 1
                if latest[index] is _MISSING:
                    return
                continue
            latest[index] = value
            if all(v is not _MISSING for v in latest):
                yield tuple(latest)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


async def trade_info_stream(config: Config,
                            opendex_assets: AsyncIterator[OpenDexAssets],
                            centralized_assets: AsyncIterator[AssetBalances],
                            centralized_price: AsyncIterator[Decimal]) -> AsyncIterator[TradeInfo]:
    """
    One TradeInfo per combined emission. An emission that changes nothing
    (same price, same balances) is skipped, so repeated trade prints and
    unchanged balance polls do not replace identical orders.
    """
    combined = combine_latest(opendex_assets, centralized_assets, centralized_price)
    previous = None
    async with aclosing(combined):
        async for opendex, centralized, price in combined:
            info = TradeInfo(
                price=price,
                margin=config.margin,
                opendex=opendex,
                centralized=centralized,
            )
            if info == previous:
                continue
            previous = info
            yield info
