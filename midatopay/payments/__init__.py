"""
MidatoPay Payment Module
Payment request sizing, QR encoding and on-chain reconciliation
"""

from midatopay.payments.models import PaymentRequest
from midatopay.payments.builder import (
    PaymentRequestBuilder,
    calculate_token_amount,
    generate_payment_id,
)

__all__ = [
    "PaymentRequest",
    "PaymentRequestBuilder",
    "calculate_token_amount",
    "generate_payment_id",
]
