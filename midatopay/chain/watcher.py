"""
Chain watcher
Polls the PaymentGateway for PaymentReceived events and hands new ones to the reconciler
"""

import asyncio
from typing import Optional, Set

import structlog

from midatopay.chain.events import PAYMENT_RECEIVED_SELECTOR, ChainEvent, PaymentReceivedV1
from midatopay.chain.rpc import StarknetRPC
from midatopay.database.client import DatabaseClient
from midatopay.errors import EventDecodeError
from midatopay.payments.reconciler import PaymentReconciler

logger = structlog.get_logger()


class ChainWatcher:
    """
    Background poller for gateway events

    - Window: [checkpoint + 1, latest], or the last `lookback_blocks` blocks
      when no checkpoint is stored yet
    - Dedup: in-process seen set plus the durable processed_events ledger
    - The checkpoint only advances when every event in the window was handled
    """

    def __init__(
        self,
        rpc: StarknetRPC,
        db: DatabaseClient,
        reconciler: PaymentReconciler,
        gateway_address: str,
        poll_interval: float = 10.0,
        lookback_blocks: int = 100,
        chunk_size: int = 100,
    ):
        self.rpc = rpc
        self.db = db
        self.reconciler = reconciler
        self.gateway_address = gateway_address
        self.poll_interval = poll_interval
        self.lookback_blocks = lookback_blocks
        self.chunk_size = chunk_size

        self.seen_events: Set[str] = set()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _block_window(self) -> Optional[tuple]:
        latest = await self.rpc.block_number()
        checkpoint = await self.db.get_checkpoint(self.gateway_address)
        if checkpoint is None:
            from_block = max(0, latest - self.lookback_blocks)
        else:
            from_block = checkpoint + 1
        if from_block > latest:
            return None
        return from_block, latest

    async def poll_for_new_events(self) -> int:
        """
        Run one polling pass.

        Returns:
            Number of events handed to the reconciler
        """
        window = await self._block_window()
        if window is None:
            return 0
        from_block, to_block = window

        events = await self.rpc.get_events(
            address=self.gateway_address,
            keys=[[PAYMENT_RECEIVED_SELECTOR]],
            from_block=from_block,
            to_block=to_block,
            chunk_size=self.chunk_size,
        )

        processed = 0
        complete = True
        for event in events:
            if event.event_id in self.seen_events:
                continue
            try:
                if await self._handle_event(event):
                    processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Left unseen so the next pass retries it
                complete = False
                logger.error("event_processing_failed", event_id=event.event_id, error=str(e))

        if complete:
            await self.db.save_checkpoint(self.gateway_address, to_block)

        logger.debug(
            "event_poll_completed",
            from_block=from_block,
            to_block=to_block,
            events=len(events),
            processed=processed,
        )
        return processed

    async def _handle_event(self, event: ChainEvent) -> bool:
        """Returns True if the event was passed to the reconciler"""
        if await self.db.is_event_processed(event.event_id):
            self.seen_events.add(event.event_id)
            return False

        try:
            payment_id = PaymentReceivedV1.decode_payment_id(event)
        except EventDecodeError as e:
            logger.warning("event_decode_failed", event_id=event.event_id, error=str(e))
            self.seen_events.add(event.event_id)
            await self.db.record_processed_event(event.event_id, None, event.transaction_hash)
            return False

        handled = False
        transaction = await self.db.get_transaction(payment_id)
        if transaction is not None and transaction.is_pending:
            receipt = await self.rpc.get_transaction_receipt(event.transaction_hash)
            try:
                await self.reconciler.process_payment_event(event, receipt)
                handled = True
            except EventDecodeError as e:
                logger.warning("event_decode_failed", event_id=event.event_id, error=str(e))
        elif transaction is None:
            logger.debug("event_for_unknown_payment", payment_id=payment_id)

        self.seen_events.add(event.event_id)
        await self.db.record_processed_event(event.event_id, payment_id, event.transaction_hash)
        return handled

    async def run(self) -> None:
        logger.info(
            "chain_watcher_started",
            contract=self.gateway_address,
            poll_interval=self.poll_interval,
        )
        try:
            while True:
                try:
                    await self.poll_for_new_events()
                except Exception as e:
                    logger.error("event_poll_failed", error=str(e))
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.info("chain_watcher_stopped")
            raise

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
