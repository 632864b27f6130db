"""
MidatoPay Core Data Models
Shared models for database operations and API
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Timezone-aware UTC now; rows coming back from Postgres are aware too"""
    return datetime.now(timezone.utc)


class TransactionStatus(str, Enum):
    """On-chain settlement states"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class PaymentStatus(str, Enum):
    """Merchant-side QR session states"""
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Transaction(BaseModel):
    """Settlement record; id is the on-chain payment id"""
    id: str
    status: TransactionStatus = TransactionStatus.PENDING
    user_id: Optional[str] = None

    # Amounts
    amount: Decimal = Decimal("0")
    currency: str = "USDT"
    token_amount: Optional[str] = None
    exchange_rate: Decimal = Decimal("1")
    final_amount: Decimal = Decimal("0")
    final_currency: str = "ARS"

    # Chain confirmation
    blockchain_tx_hash: Optional[str] = None
    confirmation_count: int = 0
    required_confirmations: int = 1
    confirmed_at: Optional[datetime] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING


class Payment(BaseModel):
    """QR payment session owned by a merchant"""
    id: str
    user_id: str
    amount: Decimal
    currency: str = "ARS"
    concept: str = "Pago QR"
    order_id: str
    status: PaymentStatus = PaymentStatus.PENDING
    qr_code: str
    merchant_address: Optional[str] = None
    expires_at: datetime
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at


class EncryptedSecret(BaseModel):
    """Authenticated ciphertext of a secret, keyed from the wallet password"""
    kdf: str = "scrypt"
    cipher: str = "chacha20-poly1305"
    salt: str
    nonce: str
    ciphertext: str


class MerchantWallet(BaseModel):
    """Merchant receiving wallet. The private key only exists encrypted."""
    email: str
    password_check: str
    encrypted_private_key: EncryptedSecret
    public_key: str
    address: str
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if "@" not in v:
            raise ValueError("email must contain '@'")
        return v.strip().lower()
