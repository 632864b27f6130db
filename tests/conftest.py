"""
Pytest configuration and shared fixtures
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from midatopay.api.dependencies import limiter
from midatopay.api.server import app
from midatopay.api.services import Services
from midatopay.chain.rpc import StarknetRPC
from midatopay.config import MidatoPayConfig
from midatopay.models import (
    Payment,
    PaymentStatus,
    Transaction,
    TransactionStatus,
    utcnow,
)
from midatopay.notifications import NotificationHub
from midatopay.oracle.prices import PriceService
from midatopay.payments.builder import PaymentRequestBuilder
from midatopay.payments.reconciler import PaymentReconciler
from midatopay.wallet.store import WalletStore
from tests.factories import GATEWAY_ADDRESS


class FakeDatabaseClient:
    """In-memory stand-in for DatabaseClient with the same conditional-update semantics"""

    def __init__(self):
        self.transactions: Dict[str, Transaction] = {}
        self.payments: Dict[str, Payment] = {}
        self.checkpoints: Dict[str, int] = {}
        self.processed_events: Dict[str, Dict[str, Any]] = {}
        self.wallets: Dict[str, Dict[str, Any]] = {}
        self.prices: List[Dict[str, Any]] = []

    async def ping(self) -> bool:
        return True

    async def create_payment(self, payment: Payment) -> Payment:
        self.payments[payment.id] = payment
        return payment

    async def get_payment_by_qr(self, qr_code: str) -> Optional[Payment]:
        return next((p for p in self.payments.values() if p.qr_code == qr_code), None)

    async def get_payment_by_order_id(self, order_id: str) -> Optional[Payment]:
        return next((p for p in self.payments.values() if p.order_id == order_id), None)

    async def list_payments_for_user(self, user_id: str, limit: int = 50) -> List[Payment]:
        return [p for p in self.payments.values() if p.user_id == user_id][:limit]

    async def mark_payment_paid(self, order_id: str) -> bool:
        for payment_id, payment in self.payments.items():
            if payment.order_id == order_id and payment.status == PaymentStatus.PENDING:
                self.payments[payment_id] = payment.model_copy(update={"status": PaymentStatus.PAID})
                return True
        return False

    async def create_transaction(self, transaction: Transaction) -> Transaction:
        self.transactions[transaction.id] = transaction
        return transaction

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.transactions.get(transaction_id)

    async def confirm_transaction(
        self,
        transaction_id: str,
        tx_hash: str,
        confirmed_at: datetime,
    ) -> Optional[Transaction]:
        current = self.transactions.get(transaction_id)
        if current is None or current.status != TransactionStatus.PENDING:
            return None
        updated = current.model_copy(update={
            "status": TransactionStatus.CONFIRMED,
            "blockchain_tx_hash": tx_hash,
            "confirmation_count": 1,
            "confirmed_at": confirmed_at,
            "updated_at": utcnow(),
        })
        self.transactions[transaction_id] = updated
        return updated

    async def fail_transaction(self, transaction_id: str) -> bool:
        current = self.transactions.get(transaction_id)
        if current is None or current.status != TransactionStatus.PENDING:
            return False
        self.transactions[transaction_id] = current.model_copy(update={
            "status": TransactionStatus.FAILED,
            "updated_at": utcnow(),
        })
        return True

    async def list_transactions_for_user(
        self,
        user_id: str,
        status: Optional[TransactionStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Transaction], int]:
        rows = [
            t for t in self.transactions.values()
            if t.user_id == user_id and (status is None or t.status == status)
        ]
        return rows[offset:offset + limit], len(rows)

    async def get_checkpoint(self, contract_address: str) -> Optional[int]:
        return self.checkpoints.get(contract_address)

    async def save_checkpoint(self, contract_address: str, block_number: int) -> None:
        self.checkpoints[contract_address] = block_number

    async def is_event_processed(self, event_id: str) -> bool:
        return event_id in self.processed_events

    async def record_processed_event(
        self,
        event_id: str,
        payment_id: Optional[str],
        transaction_hash: str,
    ) -> bool:
        if event_id in self.processed_events:
            return False
        self.processed_events[event_id] = {
            "payment_id": payment_id,
            "transaction_hash": transaction_hash,
        }
        return True

    async def save_wallet(self, user_id: str, record: Dict[str, Any]) -> Dict[str, Any]:
        self.wallets[user_id] = {"user_id": user_id, **record}
        return self.wallets[user_id]

    async def get_wallet(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self.wallets.get(user_id)

    async def delete_wallet(self, user_id: str) -> None:
        self.wallets.pop(user_id, None)

    async def record_price(self, record: Dict[str, Any]) -> None:
        self.prices.append(record)

    async def get_price_history(
        self,
        currency: str,
        base_currency: str,
        hours: int = 24,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        return [
            r for r in self.prices
            if r["currency"] == currency and r["base_currency"] == base_currency
        ][:limit]


@pytest.fixture
def test_config(tmp_path) -> MidatoPayConfig:
    """Config isolated from the developer's .env"""
    return MidatoPayConfig(
        _env_file=None,
        supabase_url="",
        supabase_key="",
        wallet_store_dir=str(tmp_path / "wallet"),
        payment_gateway_address=GATEWAY_ADDRESS,
        watcher_enabled=False,
    )


@pytest.fixture
def fake_db() -> FakeDatabaseClient:
    return FakeDatabaseClient()


@pytest.fixture
def hub() -> NotificationHub:
    return NotificationHub()


@pytest.fixture
def mock_rpc():
    rpc = MagicMock(spec=StarknetRPC)
    rpc.block_number = AsyncMock(return_value=1000)
    rpc.get_events = AsyncMock(return_value=[])
    rpc.get_transaction_receipt = AsyncMock()
    rpc.wait_for_transaction = AsyncMock()
    rpc.call = AsyncMock()
    rpc.aclose = AsyncMock()
    return rpc


@pytest.fixture
def mock_prices():
    prices = MagicMock(spec=PriceService)
    for name in (
        "get_current_price",
        "convert_ars_to_crypto",
        "get_exchange_rate_with_margin",
        "validate_exchange_rate",
        "get_price_history",
        "get_oracle_status",
        "get_usdt_balance",
        "refresh",
    ):
        setattr(prices, name, AsyncMock())
    return prices


@pytest.fixture
def reconciler(mock_rpc, fake_db, hub) -> PaymentReconciler:
    return PaymentReconciler(
        mock_rpc,
        fake_db,
        hub,
        gateway_address=GATEWAY_ADDRESS,
        finality_timeout=1,
        poll_interval=0,
    )


@pytest.fixture
def services(test_config, mock_rpc, hub, fake_db, mock_prices, reconciler) -> Services:
    return Services(
        config=test_config,
        rpc=mock_rpc,
        hub=hub,
        builder=PaymentRequestBuilder.from_config(test_config),
        prices=mock_prices,
        db=fake_db,
        reconciler=reconciler,
        wallets=WalletStore.from_config(test_config, db=fake_db),
    )


@pytest.fixture
def client(services) -> TestClient:
    """FastAPI test client (sync); lifespan is not run, services are injected"""
    limiter.enabled = False
    app.state.services = services
    yield TestClient(app)
    del app.state.services
    limiter.enabled = True


@pytest.fixture
def merchant_headers() -> Dict[str, str]:
    return {"user-id": "merchant-1"}
