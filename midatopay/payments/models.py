"""
Payment request models
The QR payload is consumed verbatim by payer wallets; keep its keys stable.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from midatopay.models import utcnow

QR_PAYLOAD_TYPE = "starknet_payment"


class PaymentRequest(BaseModel):
    """A merchant's request to be paid, sized in token base units"""
    payment_id: str = Field(description="Random felt used as on-chain payment id")
    merchant_address: str
    token_address: str
    token_amount: int = Field(ge=0, description="Amount in the token's smallest unit")
    fiat_amount: Decimal
    fiat_currency: str = "ARS"
    currency: str = Field(description="Token symbol the payer settles in")
    concept: str
    order_id: Optional[str] = None
    network: str = "starknet-sepolia"
    contract_address: str
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime

    model_config = {"frozen": True}

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def to_qr_payload(self) -> Dict[str, Any]:
        """Payload encoded into the QR shown to the payer"""
        amount_fiat = int(self.fiat_amount) if self.fiat_amount == self.fiat_amount.to_integral_value() \
            else float(self.fiat_amount)
        payload = {
            "type": QR_PAYLOAD_TYPE,
            "payment_id": self.payment_id,
            "merchant_address": self.merchant_address,
            "token_address": self.token_address,
            "amount": str(self.token_amount),
            "amount_ars": amount_fiat,
            "currency": self.currency,
            "concept": self.concept,
            "order_id": self.order_id,
            "network": self.network,
            "contract_address": self.contract_address,
        }
        if self.order_id is None:
            del payload["order_id"]
        return payload
