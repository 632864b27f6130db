"""
Request / response models for the REST API
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from midatopay.models import EncryptedSecret, Payment, Transaction


class CreatePaymentRequest(BaseModel):
    """Merchant request for a new QR payment"""
    amount: Decimal = Field(gt=0, description="Amount in fiat (ARS)")
    currency: str = Field(default="USDT", description="Token the payer settles in")
    concept: str = Field(default="Pago QR", max_length=200)
    merchant_address: str
    order_id: Optional[str] = Field(default=None, max_length=100)


class CreatePaymentResponse(BaseModel):
    payment: Payment
    qr_payload: Dict[str, Any]
    tlv: str
    qr_image: str


class PaymentDetails(BaseModel):
    payment: Payment
    transaction: Optional[Transaction] = None


class ScanRequest(BaseModel):
    qr_data: str = Field(min_length=4)


class ScanResponse(BaseModel):
    merchant_address: str
    amount: Decimal
    payment_id: str
    payment: Optional[Payment] = None


class CreateTransactionRequest(BaseModel):
    """Payer side: open a transaction for a scanned payment"""
    payment_id: str = Field(description="QR code id or on-chain payment id")


class ConfirmTransactionRequest(BaseModel):
    transaction_hash: str


class TransactionStatusResponse(BaseModel):
    id: str
    status: str
    confirmation_count: int
    required_confirmations: int
    blockchain_tx_hash: Optional[str] = None
    confirmed_at: Optional[datetime] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class TransactionList(BaseModel):
    transactions: List[Transaction]
    pagination: Pagination


class WalletMirror(BaseModel):
    """Server-side copy of a merchant wallet; only the encrypted key is accepted"""
    model_config = ConfigDict(extra="forbid")

    email: str
    encrypted_private_key: EncryptedSecret
    public_key: str
    address: str
    created_at: Optional[datetime] = None

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if "," in v:
            raise ValueError("address must be a single felt")
        return v
