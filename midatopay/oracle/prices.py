"""
Price service
Caches oracle readings, records them in price_history and answers conversion queries.
Only USDT/ARS is priced.
"""

import time
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

import structlog

from midatopay.database.client import DatabaseClient
from midatopay.errors import UnsupportedCurrency
from midatopay.oracle.models import (
    Conversion,
    OracleStatus,
    PriceRecord,
    PriceSource,
    RateValidation,
    RateWithMargin,
    TokenBalance,
)
from midatopay.oracle.service import StarknetOracle

logger = structlog.get_logger()

DEFAULT_PRICE = Decimal("1000")
SUPPORTED_PAIR = ("USDT", "ARS")


class PriceService:
    def __init__(
        self,
        oracle: StarknetOracle,
        db: Optional[DatabaseClient] = None,
        cache_seconds: float = 30,
        margin_percent: Decimal = Decimal("2"),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.oracle = oracle
        self.db = db
        self.cache_seconds = cache_seconds
        self.margin_percent = Decimal(str(margin_percent))
        self.clock = clock
        self._cache: Dict[Tuple[str, str], Tuple[PriceRecord, float]] = {}

    def _check_pair(self, currency: str, base_currency: str = "ARS") -> Tuple[str, str]:
        pair = (currency.upper(), base_currency.upper())
        if pair != SUPPORTED_PAIR:
            raise UnsupportedCurrency(f"{currency}/{base_currency}")
        return pair

    async def get_current_price(self, currency: str, base_currency: str = "ARS") -> PriceRecord:
        """
        Current ARS price of one USDT.

        An unusable oracle rate (zero) yields a DEFAULT reading that is neither
        cached nor recorded.
        """
        pair = self._check_pair(currency, base_currency)

        cached = self._cache.get(pair)
        if cached and self.clock() - cached[1] < self.cache_seconds:
            return cached[0]

        quote = await self.oracle.quote_ars_to_usdt(1)
        if not (quote.rate > 0 and quote.rate.is_finite()):
            logger.warning("oracle_rate_invalid", rate=str(quote.rate))
            return PriceRecord(
                currency=pair[0],
                base_currency=pair[1],
                price=DEFAULT_PRICE,
                source=PriceSource.DEFAULT,
            )

        record = PriceRecord(
            currency=pair[0],
            base_currency=pair[1],
            price=quote.rate,
            source=PriceSource.STARKNET_ORACLE,
            oracle_address=quote.oracle_address,
            timestamp=quote.timestamp,
        )
        self._cache[pair] = (record, self.clock())

        if self.db is not None:
            try:
                await self.db.record_price(record.model_dump(mode="json", exclude={"oracle_address"}))
            except Exception as e:
                logger.warning("price_record_failed", error=str(e))

        logger.info("price_updated", pair="/".join(pair), price=str(record.price))
        return record

    async def refresh(self) -> PriceRecord:
        """Bypass the cache; used by the periodic updater"""
        self._cache.pop(SUPPORTED_PAIR, None)
        return await self.get_current_price(*SUPPORTED_PAIR)

    async def convert_ars_to_crypto(self, amount_ars, target_crypto: str) -> Conversion:
        self._check_pair(target_crypto)
        quote = await self.oracle.quote_ars_to_usdt(amount_ars)
        margin = Decimal(1) - self.margin_percent / 100
        return Conversion(
            amount_ars=quote.amount_ars,
            target_crypto=target_crypto.upper(),
            crypto_amount=quote.usdt_amount,
            crypto_amount_with_margin=quote.usdt_amount * margin,
            exchange_rate=quote.rate,
            source=quote.source,
            oracle_address=quote.oracle_address,
            timestamp=quote.timestamp,
        )

    async def get_exchange_rate_with_margin(
        self,
        target_crypto: str,
        margin_percent: Optional[Decimal] = None,
    ) -> RateWithMargin:
        margin = self.margin_percent if margin_percent is None else Decimal(str(margin_percent))
        price = await self.get_current_price(target_crypto, "ARS")
        return RateWithMargin(
            base_rate=price.price,
            rate_with_margin=price.price * (1 + margin / 100),
            margin_percent=margin,
            target_crypto=price.currency,
            source=price.source,
            timestamp=price.timestamp,
        )

    async def validate_exchange_rate(
        self,
        target_crypto: str,
        expected_rate,
        tolerance_percent=5,
    ) -> RateValidation:
        expected = Decimal(str(expected_rate))
        if expected <= 0:
            raise ValueError("expected_rate must be positive")
        tolerance = Decimal(str(tolerance_percent))

        price = await self.get_current_price(target_crypto, "ARS")
        min_rate = expected * (1 - tolerance / 100)
        max_rate = expected * (1 + tolerance / 100)

        return RateValidation(
            is_valid=min_rate <= price.price <= max_rate,
            current_rate=price.price,
            expected_rate=expected,
            tolerance_percent=tolerance,
            min_rate=min_rate,
            max_rate=max_rate,
            deviation=abs(price.price - expected) / expected * 100,
        )

    async def get_price_history(
        self,
        currency: str,
        base_currency: str = "ARS",
        hours: int = 24,
    ) -> List[PriceRecord]:
        pair = self._check_pair(currency, base_currency)
        if self.db is None:
            return []
        rows = await self.db.get_price_history(pair[0], pair[1], hours=hours)
        return [PriceRecord.model_validate(row) for row in rows]

    async def get_oracle_status(self) -> OracleStatus:
        return await self.oracle.check_status()

    async def get_usdt_balance(self, account_address: str) -> TokenBalance:
        return await self.oracle.get_usdt_balance(account_address)
