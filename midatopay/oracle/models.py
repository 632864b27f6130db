"""
Oracle and pricing models
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from midatopay.models import utcnow


class PriceSource(str, Enum):
    STARKNET_ORACLE = "STARKNET_ORACLE"
    STARKNET_USDT = "STARKNET_USDT"
    DEFAULT = "DEFAULT"


class OracleQuote(BaseModel):
    """quote_ars_to_usdt result"""
    amount_ars: Decimal
    usdt_amount: Decimal
    rate: Decimal = Field(description="ARS per USDT; 0 when the oracle quoted nothing")
    source: PriceSource = PriceSource.STARKNET_ORACLE
    oracle_address: str
    timestamp: datetime = Field(default_factory=utcnow)


class OracleRate(BaseModel):
    rate_ppm: int
    scale: int
    actual_rate: Decimal
    is_active: bool
    timestamp: datetime = Field(default_factory=utcnow)


class TokenBalance(BaseModel):
    balance: Decimal
    balance_u256: int
    account_address: str
    token_address: str
    source: PriceSource = PriceSource.STARKNET_USDT
    timestamp: datetime = Field(default_factory=utcnow)


class OracleStatus(BaseModel):
    is_active: bool
    current_rate: Optional[Decimal] = None
    oracle_address: str
    usdt_token_address: str
    status: str
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class PriceRecord(BaseModel):
    """A price reading, as cached and as stored in price_history"""
    currency: str
    base_currency: str = "ARS"
    price: Decimal
    source: PriceSource
    oracle_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class Conversion(BaseModel):
    amount_ars: Decimal
    target_crypto: str
    crypto_amount: Decimal
    crypto_amount_with_margin: Decimal
    exchange_rate: Decimal
    source: PriceSource
    oracle_address: Optional[str] = None
    timestamp: datetime


class RateWithMargin(BaseModel):
    base_rate: Decimal
    rate_with_margin: Decimal
    margin_percent: Decimal
    target_crypto: str
    source: PriceSource
    timestamp: datetime


class RateValidation(BaseModel):
    is_valid: bool
    current_rate: Decimal
    expected_rate: Decimal
    tolerance_percent: Decimal
    min_rate: Decimal
    max_rate: Decimal
    deviation: Decimal
