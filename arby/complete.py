# arby/complete.py
import asyncio
import logging
from contextlib import aclosing
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from .context import RunContext
from .market_engine import centralized_assets
from .models import TradeInfo
from .opendex import create_opendex_orders, get_xud_client, opendex_assets
from .trade_info import trade_info_stream
from .websocket_engine import centralized_price

T = TypeVar("T")
R = TypeVar("R")

_log = logging.getLogger("arby")


async def exhaust_map(source: AsyncIterator[T],
                      attempt: Callable[[T], Awaitable[R]],
                      shutdown: Optional[asyncio.Event] = None,
                      logger: logging.Logger = _log) -> AsyncIterator[R]:
    """
    Runs `attempt` for items of `source`, never more than one at a time.
    Items arriving while an attempt is running are dropped, not queued.
    No attempt starts once `shutdown` is set.

    Yields each attempt's result as it finishes. Attempt and source errors
    propagate. If the consumer goes away, a running attempt is awaited, not aborted.
    """
    events: asyncio.Queue = asyncio.Queue()
    in_flight: Optional[asyncio.Task] = None

    def _finished(task: asyncio.Task) -> None:
        nonlocal in_flight
        in_flight = None
        events.put_nowait(('result', task))

    async def _pump() -> None:
        nonlocal in_flight
        try:
            async for item in source:
                if shutdown is not None and shutdown.is_set():
                    break
                if in_flight is not None:
                    logger.debug("Order creation in progress, dropping trade info")
                    continue
                in_flight = asyncio.create_task(attempt(item))
                in_flight.add_done_callback(_finished)
        except Exception as e:
            events.put_nowait(('error', e))
        else:
            events.put_nowait(('end', None))

    pump = asyncio.create_task(_pump())
    upstream_done = False
    try:
        while not (upstream_done and in_flight is None and events.empty()):
            kind, payload = await events.get()
            if kind == 'error':
                raise payload
            if kind == 'end':
                upstream_done = True
                continue
            yield payload.result()
    finally:
        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
        pending = in_flight
        if pending is not None:
            logger.info("Waiting for in-flight order creation to finish")
            await asyncio.wait([pending])
        while not events.empty():
            kind, payload = events.get_nowait()
            if kind == 'result' and not payload.cancelled() and payload.exception() is not None:
                logger.error(f"Order creation failed during shutdown: {payload.exception()}")


async def opendex_complete(ctx: RunContext,
                           client=None,
                           opendex_assets=opendex_assets,
                           centralized_assets=centralized_assets,
                           centralized_price=centralized_price,
                           create_orders=create_opendex_orders) -> AsyncIterator[bool]:
    """
    The trade-completion cycle: one boolean per finished order creation attempt.
    """
    owns_client = client is None
    if owns_client:
        client = get_xud_client(ctx)

    trade_infos = trade_info_stream(
        ctx.config,
        opendex_assets(ctx, client),
        centralized_assets(ctx),
        centralized_price(ctx),
    )

    async def _attempt(info: TradeInfo) -> bool:
        # create orders based on the latest trade info
        return await create_orders(ctx, client, info)

    try:
        async with aclosing(exhaust_map(trade_infos, _attempt, ctx.shutdown, ctx.loggers.opendex)) as completions:
            async for done in completions:
                yield done
    finally:
        await trade_infos.aclose()
        if owns_client:
            await client.close()
