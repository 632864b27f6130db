"""
Payment request builder
Sizes a fiat-denominated payment in token base units and emits the QR payload
"""

import secrets
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR, localcontext
from typing import Callable, Dict, Optional, Union

import structlog

from midatopay.chain.felt import felt_hex, is_valid_address
from midatopay.config import MidatoPayConfig
from midatopay.errors import UnsupportedCurrency
from midatopay.models import utcnow
from midatopay.payments.models import PaymentRequest

logger = structlog.get_logger()

DEFAULT_EXPIRY = timedelta(minutes=30)

Number = Union[int, float, str, Decimal]


def calculate_token_amount(fiat_amount: Number, rate: Number, decimals: int) -> int:
    """
    Convert a fiat amount into token base units.

    token_amount = floor((fiat_amount / rate) * 10**decimals)

    Args:
        fiat_amount: Amount in fiat (e.g. ARS)
        rate: Fiat units per whole token
        decimals: Token decimals

    Returns:
        Integer amount in the token's smallest unit
    """
    with localcontext() as ctx:
        ctx.prec = 80
        amount = Decimal(str(fiat_amount)) / Decimal(str(rate)) * (Decimal(10) ** decimals)
        return int(amount.to_integral_value(rounding=ROUND_FLOOR))


def generate_payment_id() -> str:
    """Random non-zero felt below 2**251, like a freshly drawn account address"""
    return felt_hex(secrets.randbelow(2 ** 251 - 1) + 1)


class PaymentRequestBuilder:
    """Builds PaymentRequests from a static exchange-rate table"""

    def __init__(
        self,
        token_rates: Dict[str, Decimal],
        token_decimals: Dict[str, int],
        token_addresses: Dict[str, str],
        gateway_address: str,
        network: str = "starknet-sepolia",
        fiat_currency: str = "ARS",
        expiry: timedelta = DEFAULT_EXPIRY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.token_rates = {k.upper(): Decimal(str(v)) for k, v in token_rates.items()}
        self.token_decimals = {k.upper(): int(v) for k, v in token_decimals.items()}
        self.token_addresses = {k.upper(): v for k, v in token_addresses.items()}
        self.gateway_address = gateway_address
        self.network = network
        self.fiat_currency = fiat_currency
        self.expiry = expiry
        self.clock = clock

    @classmethod
    def from_config(cls, config: MidatoPayConfig) -> "PaymentRequestBuilder":
        return cls(
            token_rates=config.token_rates,
            token_decimals=config.token_decimals,
            token_addresses=config.token_addresses,
            gateway_address=config.payment_gateway_address,
            network=config.network,
            fiat_currency=config.fiat_currency,
            expiry=timedelta(minutes=config.payment_expiry_minutes),
        )

    @property
    def supported_currencies(self) -> list[str]:
        return sorted(
            c for c in self.token_rates
            if c in self.token_decimals and c in self.token_addresses
        )

    def rate_for(self, currency: str) -> Decimal:
        key = currency.upper()
        if key not in self.supported_currencies:
            raise UnsupportedCurrency(currency)
        return self.token_rates[key]

    def quote_token_amount(self, fiat_amount: Number, currency: str) -> int:
        rate = self.rate_for(currency)
        return calculate_token_amount(fiat_amount, rate, self.token_decimals[currency.upper()])

    def create_payment(
        self,
        fiat_amount: Number,
        currency: str,
        merchant_address: str,
        concept: str,
        order_id: Optional[str] = None,
    ) -> PaymentRequest:
        """
        Build a PaymentRequest. Persisting the pending Transaction is up to the caller.

        Raises:
            UnsupportedCurrency: currency is not in the token table
            ValueError: amount is not a positive finite number or address is not a felt
        """
        amount = Decimal(str(fiat_amount))
        if not amount.is_finite() or amount <= 0:
            raise ValueError(f"fiat_amount must be positive, got {fiat_amount}")

        symbol = currency.upper()
        token_amount = self.quote_token_amount(amount, symbol)

        if not is_valid_address(merchant_address):
            raise ValueError(f"Invalid merchant address: {merchant_address}")

        now = self.clock()
        request = PaymentRequest(
            payment_id=generate_payment_id(),
            merchant_address=merchant_address,
            token_address=self.token_addresses[symbol],
            token_amount=token_amount,
            fiat_amount=amount,
            fiat_currency=self.fiat_currency,
            currency=symbol,
            concept=concept,
            order_id=order_id,
            network=self.network,
            contract_address=self.gateway_address,
            created_at=now,
            expires_at=now + self.expiry,
        )

        logger.info(
            "payment_request_created",
            payment_id=request.payment_id,
            currency=symbol,
            fiat_amount=str(amount),
            token_amount=token_amount,
            merchant=merchant_address,
        )
        return request
