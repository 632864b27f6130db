"""
Payment reconciler
Turns a PaymentReceived event into a CONFIRMED transaction, exactly once
"""

from typing import Optional

import structlog

from midatopay.chain.events import ChainEvent, PaymentReceivedV1, TransactionReceipt
from midatopay.chain.felt import felt_hex
from midatopay.chain.rpc import StarknetRPC
from midatopay.database.client import DatabaseClient
from midatopay.errors import PaymentEventNotFound, TransactionFailed, TransactionNotFound
from midatopay.models import Transaction, utcnow
from midatopay.notifications import NotificationHub

logger = structlog.get_logger()


class PaymentReconciler:
    """
    Confirms payments against the chain.

    The PENDING -> CONFIRMED transition is a conditional update in the database;
    whichever caller (watcher or confirm endpoint) wins it sends the notification.
    """

    def __init__(
        self,
        rpc: StarknetRPC,
        db: DatabaseClient,
        hub: Optional[NotificationHub],
        gateway_address: str,
        finality_timeout: float = 120.0,
        poll_interval: float = 2.0,
    ):
        self.rpc = rpc
        self.db = db
        self.hub = hub
        self.gateway_address = gateway_address
        self.finality_timeout = finality_timeout
        self.poll_interval = poll_interval

    async def process_payment(self, transaction_hash: str, payment_id: str) -> Transaction:
        """
        Synchronous confirmation path used by the API.

        Raises:
            RpcUnavailable: receipt did not arrive before the finality timeout
            TransactionFailed: the transaction reverted
            PaymentEventNotFound: no PaymentReceived for payment_id from the gateway
            EventDecodeError: the matching event has an unexpected shape
        """
        logger.info("processing_payment", tx_hash=transaction_hash, payment_id=payment_id)

        receipt = await self.rpc.wait_for_transaction(
            transaction_hash,
            timeout=self.finality_timeout,
            poll_interval=self.poll_interval,
        )
        if not receipt.succeeded:
            logger.warning(
                "payment_transaction_failed",
                tx_hash=transaction_hash,
                status=receipt.execution_status,
                reason=receipt.revert_reason,
            )
            raise TransactionFailed(receipt.execution_status, receipt.revert_reason)

        event = self.find_payment_event(receipt, payment_id)
        if event is None:
            raise PaymentEventNotFound(transaction_hash, payment_id)

        transaction = await self.process_payment_event(event, receipt)
        if transaction is None:
            raise PaymentEventNotFound(transaction_hash, payment_id)
        return transaction

    def find_payment_event(self, receipt: TransactionReceipt, payment_id: str) -> Optional[ChainEvent]:
        for event in receipt.events:
            if event.is_from(self.gateway_address) and event.has_key(payment_id):
                return event
        return None

    async def process_payment_event(
        self,
        event: ChainEvent,
        receipt: TransactionReceipt,
    ) -> Optional[Transaction]:
        """
        Apply a PaymentReceived event.

        Returns:
            The confirmed transaction (or the stored one when it was already
            confirmed), None when the event comes from another contract
        """
        if not event.is_from(self.gateway_address):
            logger.warning(
                "foreign_event_ignored",
                event_id=event.event_id,
                from_address=event.from_address,
            )
            return None

        payment = PaymentReceivedV1.decode(event)
        tx_hash = felt_hex(receipt.transaction_hash)

        updated = await self.db.confirm_transaction(payment.payment_id, tx_hash, utcnow())
        if updated is None:
            existing = await self.db.get_transaction(payment.payment_id)
            if existing is None:
                raise TransactionNotFound(payment.payment_id)
            logger.info(
                "payment_already_processed",
                payment_id=payment.payment_id,
                status=existing.status.value,
            )
            return existing

        logger.info(
            "payment_confirmed",
            payment_id=payment.payment_id,
            tx_hash=tx_hash,
            amount=str(payment.amount),
            merchant=payment.merchant_address,
        )

        try:
            await self.db.mark_payment_paid(payment.payment_id)
        except Exception as e:
            logger.error("payment_mark_paid_failed", payment_id=payment.payment_id, error=str(e))

        if self.hub is not None:
            await self.hub.notify_payment_confirmed({
                "paymentId": payment.payment_id,
                "transactionHash": tx_hash,
                "amount": str(payment.amount),
                "merchantAddress": payment.merchant_address,
                "timestamp": payment.paid_at.isoformat(),
            })

        return updated

