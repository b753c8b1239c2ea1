# arby/trade.py
import asyncio
from contextlib import aclosing

from .complete import opendex_complete
from .context import RunContext
from .models import TradingOutcome, TradingResult


async def run_trading(ctx: RunContext, complete=opendex_complete) -> TradingResult:
    """
    Runs the trade-completion cycle until it ends or shutdown fires.
    Never raises for trading failures; they come back as TradingOutcome.FAILED.
    """
    logger = ctx.loggers.main

    async def _consume() -> None:
        async with aclosing(complete(ctx)) as cycle:
            async for done in cycle:
                logger.debug(f"Order creation attempt finished (success={done})")

    trading = asyncio.create_task(_consume())
    stopper = asyncio.create_task(ctx.shutdown.wait())
    try:
        await asyncio.wait({trading, stopper}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stopper.cancel()

    if not trading.done():
        logger.info("Shutdown requested. Stopping trading.")
        trading.cancel()

    try:
        await trading
    except asyncio.CancelledError:
        return TradingResult(TradingOutcome.SHUTDOWN)
    except Exception as e:
        logger.error(f"Trading stopped: {e!r}")
        return TradingResult(TradingOutcome.FAILED, e)

    if ctx.shutdown.is_set():
        return TradingResult(TradingOutcome.SHUTDOWN)
    return TradingResult(TradingOutcome.COMPLETED)
