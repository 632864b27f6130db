"""
Supabase database client for MidatoPay
Provides typed storage operations for payments, settlement and watcher state
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from supabase import create_client, Client

from midatopay.config import get_config
from midatopay.models import (
    Payment,
    PaymentStatus,
    Transaction,
    TransactionStatus,
    utcnow,
)


class DatabaseClient:
    """
    Supabase client for MidatoPay operations
    """

    def __init__(self, supabase_url: str, supabase_key: str):
        """Initialize Supabase client"""
        self.client: Client = create_client(supabase_url, supabase_key)

    async def ping(self) -> bool:
        self.client.table("transactions").select("id").limit(1).execute()
        return True

    # ===== PAYMENT OPERATIONS =====

    async def create_payment(self, payment: Payment) -> Payment:
        result = self.client.table("payments").insert(payment.model_dump(mode="json")).execute()
        return Payment.model_validate(result.data[0]) if result.data else payment

    async def get_payment_by_qr(self, qr_code: str) -> Optional[Payment]:
        result = self.client.table("payments").select("*").eq("qr_code", qr_code).execute()
        return Payment.model_validate(result.data[0]) if result.data else None

    async def get_payment_by_order_id(self, order_id: str) -> Optional[Payment]:
        result = self.client.table("payments").select("*").eq("order_id", order_id).execute()
        return Payment.model_validate(result.data[0]) if result.data else None

    async def list_payments_for_user(self, user_id: str, limit: int = 50) -> List[Payment]:
        result = (
            self.client.table("payments")
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [Payment.model_validate(row) for row in result.data]

    async def mark_payment_paid(self, order_id: str) -> bool:
        """PENDING -> PAID for the payment whose order id is the on-chain payment id"""
        result = (
            self.client.table("payments")
            .update({"status": PaymentStatus.PAID.value, "updated_at": utcnow().isoformat()})
            .eq("order_id", order_id)
            .eq("status", PaymentStatus.PENDING.value)
            .execute()
        )
        return bool(result.data)

    # ===== TRANSACTION OPERATIONS =====

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        result = self.client.table("transactions").insert(transaction.model_dump(mode="json")).execute()
        return Transaction.model_validate(result.data[0]) if result.data else transaction

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        result = self.client.table("transactions").select("*").eq("id", transaction_id).execute()
        return Transaction.model_validate(result.data[0]) if result.data else None

    async def confirm_transaction(
        self,
        transaction_id: str,
        tx_hash: str,
        confirmed_at: datetime,
    ) -> Optional[Transaction]:
        """
        Compare-and-set PENDING -> CONFIRMED.

        The status filter makes this a single conditional UPDATE in Postgres, so
        concurrent confirmations of the same payment update at most one row.

        Returns:
            The updated transaction, or None if it was missing or not PENDING
        """
        result = (
            self.client.table("transactions")
            .update({
                "status": TransactionStatus.CONFIRMED.value,
                "blockchain_tx_hash": tx_hash,
                "confirmation_count": 1,
                "confirmed_at": confirmed_at.isoformat(),
                "updated_at": utcnow().isoformat(),
            })
            .eq("id", transaction_id)
            .eq("status", TransactionStatus.PENDING.value)
            .execute()
        )
        return Transaction.model_validate(result.data[0]) if result.data else None

    async def fail_transaction(self, transaction_id: str) -> bool:
        """Compare-and-set PENDING -> FAILED; used when a payment could not be stored"""
        result = (
            self.client.table("transactions")
            .update({
                "status": TransactionStatus.FAILED.value,
                "updated_at": utcnow().isoformat(),
            })
            .eq("id", transaction_id)
            .eq("status", TransactionStatus.PENDING.value)
            .execute()
        )
        return bool(result.data)

    async def list_transactions_for_user(
        self,
        user_id: str,
        status: Optional[TransactionStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Transaction], int]:
        query = self.client.table("transactions").select("*", count="exact").eq("user_id", user_id)
        if status:
            query = query.eq("status", status.value)
        result = query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        transactions = [Transaction.model_validate(row) for row in result.data]
        return transactions, result.count or 0

    # ===== WATCHER STATE =====

    async def get_checkpoint(self, contract_address: str) -> Optional[int]:
        result = (
            self.client.table("watcher_checkpoints")
            .select("last_block")
            .eq("contract_address", contract_address)
            .execute()
        )
        return int(result.data[0]["last_block"]) if result.data else None

    async def save_checkpoint(self, contract_address: str, block_number: int) -> None:
        self.client.table("watcher_checkpoints").upsert(
            {
                "contract_address": contract_address,
                "last_block": block_number,
                "updated_at": utcnow().isoformat(),
            },
            on_conflict="contract_address",
        ).execute()

    async def is_event_processed(self, event_id: str) -> bool:
        result = self.client.table("processed_events").select("event_id").eq("event_id", event_id).execute()
        return bool(result.data)

    async def record_processed_event(
        self,
        event_id: str,
        payment_id: Optional[str],
        transaction_hash: str,
    ) -> bool:
        """
        Insert into the idempotency ledger (unique event_id).

        Returns:
            True if this call recorded the event, False if it was already there
        """
        result = self.client.table("processed_events").upsert(
            {
                "event_id": event_id,
                "payment_id": payment_id,
                "transaction_hash": transaction_hash,
                "processed_at": utcnow().isoformat(),
            },
            on_conflict="event_id",
            ignore_duplicates=True,
        ).execute()
        return bool(result.data)

    # ===== WALLET MIRROR =====

    async def save_wallet(self, user_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = {"user_id": user_id, **record, "updated_at": utcnow().isoformat()}
        result = self.client.table("merchant_wallets").upsert(row, on_conflict="user_id").execute()
        return result.data[0] if result.data else row

    async def get_wallet(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("merchant_wallets").select("*").eq("user_id", user_id).execute()
        return result.data[0] if result.data else None

    async def delete_wallet(self, user_id: str) -> None:
        self.client.table("merchant_wallets").delete().eq("user_id", user_id).execute()

    # ===== PRICE HISTORY =====

    async def record_price(self, record: Dict[str, Any]) -> None:
        self.client.table("price_history").insert(record).execute()

    async def get_price_history(
        self,
        currency: str,
        base_currency: str,
        hours: int = 24,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        since = (utcnow() - timedelta(hours=hours)).isoformat()
        result = (
            self.client.table("price_history")
            .select("*")
            .eq("currency", currency)
            .eq("base_currency", base_currency)
            .gte("timestamp", since)
            .order("timestamp", desc=True)
            .limit(limit)
            .execute()
        )
        return result.data


# Singleton instance
_db_client: Optional[DatabaseClient] = None


def get_db_client() -> DatabaseClient:
    """Get or create database client singleton"""
    global _db_client
    if _db_client is None:
        config = get_config()
        if not config.database_configured:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be set")
        _db_client = DatabaseClient(config.supabase_url, config.supabase_key)
    return _db_client
