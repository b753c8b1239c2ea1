# arby/cleanup.py
from .context import RunContext
from .market_engine import remove_cex_orders
from .opendex import OPENDEX_RETRY_DELAY, get_xud_client, remove_opendex_orders, retry_recoverable


async def cleanup(ctx: RunContext,
                  remove_opendex_orders=remove_opendex_orders,
                  remove_cex_orders=remove_cex_orders,
                  get_client=get_xud_client,
                  retry_delay: float = OPENDEX_RETRY_DELAY) -> None:
    """
    Retracts our orders on OpenDEX, then on the CEX.
    Both venues are always attempted; the first failure is re-raised afterwards.
    """
    logger = ctx.loggers.main
    logger.info("Cleaning up: removing open orders on both venues.")
    errors = []

    client = get_client(ctx)
    try:
        await retry_recoverable(
            lambda: remove_opendex_orders(ctx, client), ctx.loggers.opendex, delay=retry_delay,
        )
    except Exception as e:
        ctx.loggers.opendex.error(f"Failed to remove OpenDEX orders: {e}")
        errors.append(e)
    finally:
        await client.close()

    try:
        await remove_cex_orders(ctx)
    except Exception as e:
        ctx.loggers.centralized.error(f"Failed to remove CEX orders: {e}")
        errors.append(e)

    if errors:
        raise errors[0]
    logger.info("Cleanup complete.")
