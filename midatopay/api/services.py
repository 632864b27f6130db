"""
Service container for the API process
Built once in the lifespan and stored on app.state.services
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from midatopay.chain.rpc import StarknetRPC
from midatopay.chain.watcher import ChainWatcher
from midatopay.config import MidatoPayConfig
from midatopay.database.client import DatabaseClient, get_db_client
from midatopay.notifications import NotificationHub
from midatopay.oracle.prices import PriceService
from midatopay.oracle.service import StarknetOracle
from midatopay.payments.builder import PaymentRequestBuilder
from midatopay.payments.reconciler import PaymentReconciler
from midatopay.wallet.store import WalletStore

logger = structlog.get_logger()


@dataclass
class Services:
    config: MidatoPayConfig
    rpc: StarknetRPC
    hub: NotificationHub
    builder: PaymentRequestBuilder
    prices: PriceService
    db: Optional[DatabaseClient] = None
    reconciler: Optional[PaymentReconciler] = None
    watcher: Optional[ChainWatcher] = None
    wallets: Optional[WalletStore] = None

    async def aclose(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
        self.hub.close_all()
        await self.rpc.aclose()


def build_services(config: MidatoPayConfig, db: Optional[DatabaseClient] = None) -> Services:
    """
    Wire the services from config. Without a database only the builder,
    oracle and notification endpoints are usable; the watcher is not created.
    """
    if db is None and config.database_configured:
        db = get_db_client()

    rpc = StarknetRPC(config.starknet_rpc_url, timeout=config.rpc_timeout_seconds)
    hub = NotificationHub()
    oracle = StarknetOracle.from_config(config, rpc)
    prices = PriceService(
        oracle,
        db=db,
        cache_seconds=config.price_cache_seconds,
        margin_percent=config.price_margin_percent,
    )

    services = Services(
        config=config,
        rpc=rpc,
        hub=hub,
        builder=PaymentRequestBuilder.from_config(config),
        prices=prices,
        db=db,
        wallets=WalletStore.from_config(config, db=db),
    )

    if db is None:
        logger.warning("database_not_configured", watcher="disabled")
        return services

    services.reconciler = PaymentReconciler(
        rpc,
        db,
        hub,
        gateway_address=config.payment_gateway_address,
        finality_timeout=config.finality_timeout_seconds,
        poll_interval=config.finality_poll_seconds,
    )
    services.watcher = ChainWatcher(
        rpc,
        db,
        services.reconciler,
        gateway_address=config.payment_gateway_address,
        poll_interval=config.poll_interval_seconds,
        lookback_blocks=config.event_lookback_blocks,
        chunk_size=config.event_chunk_size,
    )
    return services
