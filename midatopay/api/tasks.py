import asyncio

import structlog

from midatopay.oracle.prices import PriceService

logger = structlog.get_logger()


async def run_price_updater(prices: PriceService, interval_seconds: float = 30):
    """Background task that refreshes the USDT/ARS price"""
    while True:
        try:
            record = await prices.refresh()
            logger.debug("price_refreshed", price=str(record.price), source=record.source.value)
        except asyncio.CancelledError:
            logger.info("price_updater_stopped")
            raise
        except Exception as e:
            logger.error("price_update_error", error=str(e))

        await asyncio.sleep(interval_seconds)
