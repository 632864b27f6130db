import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from midatopay.api.dependencies import get_db, get_services, get_user_id, limiter
from midatopay.api.models import (
    ConfirmTransactionRequest,
    CreateTransactionRequest,
    Pagination,
    TransactionList,
    TransactionStatusResponse,
)
from midatopay.api.services import Services
from midatopay.chain.felt import felt_hex
from midatopay.database.client import DatabaseClient
from midatopay.models import PaymentStatus, Transaction, TransactionStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


def parse_felt(value: str, name: str = "payment id") -> str:
    try:
        return felt_hex(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name}: {value}"
        )


async def load_transaction(db: DatabaseClient, transaction_id: str) -> Transaction:
    transaction = await db.get_transaction(parse_felt(transaction_id))
    if transaction is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Transaction {transaction_id} not found"
        )
    return transaction


@router.post("/create", response_model=Transaction, status_code=status.HTTP_201_CREATED)
async def create_transaction(
    body: CreateTransactionRequest,
    user_id: str = Depends(get_user_id),
    db: DatabaseClient = Depends(get_db),
):
    """
    Payer side: open the transaction for a scanned payment.
    Returns the existing PENDING transaction when the payment already has one.
    """
    payment = await db.get_payment_by_qr(body.payment_id)
    if payment is None:
        payment = await db.get_payment_by_order_id(parse_felt(body.payment_id))
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    if payment.status != PaymentStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Payment is {payment.status.value}"
        )
    if payment.is_expired():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Payment has expired")

    existing = await db.get_transaction(payment.order_id)
    if existing is not None:
        return existing

    transaction = await db.create_transaction(Transaction(
        id=payment.order_id,
        user_id=user_id,
        amount=payment.amount,
        currency=payment.currency,
        final_amount=payment.amount,
        final_currency=payment.currency,
    ))
    logger.info("transaction_created", transaction_id=transaction.id, user_id=user_id)
    return transaction


@router.get("/my-transactions", response_model=TransactionList)
async def my_transactions(
    page: int = 1,
    limit: int = 10,
    status_filter: Optional[TransactionStatus] = None,
    user_id: str = Depends(get_user_id),
    db: DatabaseClient = Depends(get_db),
):
    page = max(page, 1)
    limit = min(max(limit, 1), 100)
    transactions, total = await db.list_transactions_for_user(
        user_id,
        status=status_filter,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return TransactionList(
        transactions=transactions,
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            pages=math.ceil(total / limit) if total else 0,
        ),
    )


@router.post("/{transaction_id}/confirm", response_model=Transaction)
@limiter.limit("20/minute")
async def confirm_transaction(
    request: Request,
    transaction_id: str,
    body: ConfirmTransactionRequest,
    services: Services = Depends(get_services),
    db: DatabaseClient = Depends(get_db),
):
    """
    Confirm a payment from its transaction hash.
    Waits for the receipt; failures map to 422 (reverted / no event) or 503 (node).
    """
    transaction = await load_transaction(db, transaction_id)
    if transaction.status == TransactionStatus.CONFIRMED:
        return transaction

    tx_hash = parse_felt(body.transaction_hash, "transaction hash")
    return await services.reconciler.process_payment(tx_hash, transaction.id)


@router.get("/{transaction_id}", response_model=Transaction)
async def get_transaction(transaction_id: str, db: DatabaseClient = Depends(get_db)):
    return await load_transaction(db, transaction_id)


@router.get("/{transaction_id}/status", response_model=TransactionStatusResponse)
async def get_transaction_status(transaction_id: str, db: DatabaseClient = Depends(get_db)):
    transaction = await load_transaction(db, transaction_id)
    return TransactionStatusResponse(
        id=transaction.id,
        status=transaction.status.value,
        confirmation_count=transaction.confirmation_count,
        required_confirmations=transaction.required_confirmations,
        blockchain_tx_hash=transaction.blockchain_tx_hash,
        confirmed_at=transaction.confirmed_at,
    )
