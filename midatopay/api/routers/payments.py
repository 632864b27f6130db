import json
import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
import structlog

from midatopay.api.dependencies import get_db, get_merchant_key, get_services, get_user_id, limiter
from midatopay.api.models import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentDetails,
    ScanRequest,
    ScanResponse,
)
from midatopay.api.services import Services
from midatopay.chain.felt import felt_hex
from midatopay.database.client import DatabaseClient
from midatopay.models import Payment, PaymentStatus, Transaction
from midatopay.payments.emv_qr import (
    encode_payment_qr,
    generate_payment_reference,
    parse_payment_qr,
    render_qr_image,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/payments", tags=["Payments"])


@router.post("", response_model=CreatePaymentResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute", key_func=get_merchant_key)
async def create_payment(
    request: Request,
    body: CreatePaymentRequest,
    user_id: str = Depends(get_user_id),
    services: Services = Depends(get_services),
    db: DatabaseClient = Depends(get_db),
):
    """
    Create a QR payment.
    Persists the PENDING transaction (keyed by payment id) and the merchant's payment session.
    """
    try:
        payment_request = services.builder.create_payment(
            fiat_amount=body.amount,
            currency=body.currency,
            merchant_address=body.merchant_address,
            concept=body.concept,
            order_id=body.order_id,
        )
        tlv = encode_payment_qr(
            payment_request.merchant_address,
            payment_request.fiat_amount,
            payment_request.payment_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    await db.create_transaction(Transaction(
        id=payment_request.payment_id,
        user_id=user_id,
        amount=payment_request.fiat_amount,
        currency=payment_request.currency,
        token_amount=str(payment_request.token_amount),
        exchange_rate=services.builder.rate_for(payment_request.currency),
        final_amount=payment_request.fiat_amount,
        final_currency=payment_request.fiat_currency,
    ))

    try:
        payment = await db.create_payment(Payment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=payment_request.fiat_amount,
            currency=payment_request.fiat_currency,
            concept=payment_request.concept,
            order_id=payment_request.payment_id,
            qr_code=generate_payment_reference(),
            merchant_address=payment_request.merchant_address,
            expires_at=payment_request.expires_at,
            created_at=payment_request.created_at,
        ))
    except Exception as e:
        # No QR is issued for this payment id, so its transaction can never settle
        logger.error(
            "payment_insert_failed",
            payment_id=payment_request.payment_id,
            user_id=user_id,
            error=str(e),
        )
        await db.fail_transaction(payment_request.payment_id)
        raise

    qr_payload = payment_request.to_qr_payload()

    logger.info(
        "payment_created",
        payment_id=payment_request.payment_id,
        qr_code=payment.qr_code,
        user_id=user_id,
    )

    return CreatePaymentResponse(
        payment=payment,
        qr_payload=qr_payload,
        tlv=tlv,
        qr_image=render_qr_image(json.dumps(qr_payload)),
    )


@router.get("/my-payments", response_model=List[Payment])
async def my_payments(
    limit: int = 50,
    user_id: str = Depends(get_user_id),
    db: DatabaseClient = Depends(get_db),
):
    return await db.list_payments_for_user(user_id, limit=min(max(limit, 1), 100))


@router.get("/qr/{qr_id}", response_model=PaymentDetails)
async def get_payment_by_qr(qr_id: str, db: DatabaseClient = Depends(get_db)):
    """Look up a payment by its QR reference (or its on-chain payment id)"""
    payment = await db.get_payment_by_qr(qr_id)
    if payment is None:
        try:
            payment = await db.get_payment_by_order_id(felt_hex(qr_id))
        except ValueError:
            payment = None
    if payment is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Payment {qr_id} not found")

    if payment.status == PaymentStatus.PENDING and payment.is_expired():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Payment has expired")

    transaction = await db.get_transaction(payment.order_id)
    return PaymentDetails(payment=payment, transaction=transaction)


@router.post("/scan", response_model=ScanResponse)
async def scan_payment(body: ScanRequest, db: DatabaseClient = Depends(get_db)):
    """Decode a TLV payment QR and resolve the payment it refers to"""
    data = parse_payment_qr(body.qr_data)

    try:
        payment = await db.get_payment_by_order_id(felt_hex(data.payment_id))
    except ValueError:
        payment = await db.get_payment_by_qr(data.payment_id)

    return ScanResponse(
        merchant_address=data.merchant_address,
        amount=data.amount,
        payment_id=data.payment_id,
        payment=payment,
    )
