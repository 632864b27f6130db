from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from midatopay.api.dependencies import get_services
from midatopay.api.services import Services
from midatopay.chain.felt import is_valid_address
from midatopay.oracle.models import (
    Conversion,
    OracleStatus,
    PriceRecord,
    RateValidation,
    RateWithMargin,
    TokenBalance,
)

router = APIRouter(prefix="/api/oracle", tags=["Oracle"])


@router.get("/price", response_model=PriceRecord)
async def get_price(
    currency: str = "USDT",
    base_currency: str = "ARS",
    services: Services = Depends(get_services),
):
    return await services.prices.get_current_price(currency, base_currency)


@router.get("/convert", response_model=Conversion)
async def convert(
    amount: Decimal = Query(gt=0),
    target_crypto: str = "USDT",
    services: Services = Depends(get_services),
):
    """Advisory ARS -> token conversion from the on-chain oracle"""
    return await services.prices.convert_ars_to_crypto(amount, target_crypto)


@router.get("/rate-with-margin", response_model=RateWithMargin)
async def rate_with_margin(
    target_crypto: str = "USDT",
    margin_percent: Optional[Decimal] = Query(default=None, ge=0, le=100),
    services: Services = Depends(get_services),
):
    return await services.prices.get_exchange_rate_with_margin(target_crypto, margin_percent)


@router.get("/validate-rate", response_model=RateValidation)
async def validate_rate(
    expected_rate: Decimal = Query(gt=0),
    target_crypto: str = "USDT",
    tolerance_percent: Decimal = Query(default=Decimal("5"), ge=0, le=100),
    services: Services = Depends(get_services),
):
    return await services.prices.validate_exchange_rate(target_crypto, expected_rate, tolerance_percent)


@router.get("/history", response_model=List[PriceRecord])
async def price_history(
    currency: str = "USDT",
    base_currency: str = "ARS",
    hours: int = Query(default=24, ge=1, le=24 * 30),
    services: Services = Depends(get_services),
):
    return await services.prices.get_price_history(currency, base_currency, hours)


@router.get("/status", response_model=OracleStatus)
async def oracle_status(services: Services = Depends(get_services)):
    return await services.prices.get_oracle_status()


@router.get("/balance/{address}", response_model=TokenBalance)
async def usdt_balance(address: str, services: Services = Depends(get_services)):
    if not is_valid_address(address):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid address: {address}")
    return await services.prices.get_usdt_balance(address)
