"""
Tests for the oracle reader and price service
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from midatopay.errors import OracleError, RpcUnavailable, UnsupportedCurrency
from midatopay.oracle.models import PriceSource
from midatopay.oracle.prices import DEFAULT_PRICE, PriceService
from midatopay.oracle.service import ORACLE_SCALE, StarknetOracle, selector
from tests.factories import USDT_ADDRESS

ORACLE_ADDRESS = "0x0123"


def scaled(value) -> str:
    return hex(int(Decimal(str(value)) * ORACLE_SCALE))


@pytest.fixture
def oracle(mock_rpc) -> StarknetOracle:
    return StarknetOracle(mock_rpc, ORACLE_ADDRESS, USDT_ADDRESS, usdt_decimals=6)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def prices(oracle, fake_db, clock) -> PriceService:
    return PriceService(oracle, db=fake_db, cache_seconds=30, margin_percent=2, clock=clock)


def quote_rate(mock_rpc, ars_per_usdt):
    """Answer quote_ars_to_usdt calls as an oracle pricing USDT at ars_per_usdt"""
    def answer(contract, entry_point, calldata):
        amount = Decimal(int(calldata[0], 16)) / ORACLE_SCALE
        return [scaled(amount / Decimal(ars_per_usdt))] if ars_per_usdt else ["0x0"]
    mock_rpc.call.side_effect = answer


class TestStarknetOracle:
    async def test_quote_request_shape(self, oracle, mock_rpc):
        mock_rpc.call.return_value = [scaled("3.6")]

        quote = await oracle.quote_ars_to_usdt(5000)

        mock_rpc.call.assert_awaited_once_with(
            ORACLE_ADDRESS, selector("quote_ars_to_usdt"), [hex(5000 * ORACLE_SCALE)]
        )
        assert quote.usdt_amount == Decimal("3.6")
        assert quote.rate == Decimal(5000) / Decimal("3.6")
        assert quote.source == PriceSource.STARKNET_ORACLE

    async def test_zero_quote_gives_zero_rate(self, oracle, mock_rpc):
        mock_rpc.call.return_value = ["0x0"]
        quote = await oracle.quote_ars_to_usdt(1)
        assert quote.rate == 0

    async def test_rejects_negative_and_oversized_amounts(self, oracle):
        with pytest.raises(ValueError):
            await oracle.quote_ars_to_usdt(-1)
        with pytest.raises(ValueError):
            await oracle.quote_ars_to_usdt(2 ** 128)

    async def test_empty_result(self, oracle, mock_rpc):
        mock_rpc.call.return_value = []
        with pytest.raises(OracleError):
            await oracle.quote_ars_to_usdt(1)

    async def test_current_rate(self, oracle, mock_rpc):
        mock_rpc.call.side_effect = [[hex(1250000000)], [hex(1000000)], ["0x1"]]

        rate = await oracle.get_current_rate()

        assert rate.actual_rate == Decimal("1250")
        assert rate.is_active

    async def test_zero_scale(self, oracle, mock_rpc):
        mock_rpc.call.side_effect = [["0x1"], ["0x0"], ["0x1"]]
        with pytest.raises(OracleError):
            await oracle.get_current_rate()

    async def test_usdt_balance_u256(self, oracle, mock_rpc):
        mock_rpc.call.return_value = [hex(12_500_000), "0x0"]

        balance = await oracle.get_usdt_balance("0xabc")

        mock_rpc.call.assert_awaited_once_with(USDT_ADDRESS, selector("balanceOf"), ["0xabc"])
        assert balance.balance == Decimal("12.5")
        assert balance.balance_u256 == 12_500_000
        assert balance.source == PriceSource.STARKNET_USDT

    async def test_usdt_balance_high_word(self, oracle, mock_rpc):
        mock_rpc.call.return_value = ["0x0", "0x1"]
        balance = await oracle.get_usdt_balance("0xabc")
        assert balance.balance_u256 == 2 ** 128

    async def test_status_active(self, oracle, mock_rpc):
        mock_rpc.call.side_effect = [[hex(1250000000)], [hex(1000000)], ["0x1"]]
        status = await oracle.check_status()
        assert status.status == "ACTIVE"
        assert status.current_rate == Decimal("1250")

    async def test_status_never_raises(self, oracle, mock_rpc):
        mock_rpc.call.side_effect = RpcUnavailable("node down")
        status = await oracle.check_status()
        assert status.status == "ERROR"
        assert not status.is_active
        assert "node down" in status.error


class TestPriceService:
    async def test_current_price(self, prices, mock_rpc, fake_db):
        quote_rate(mock_rpc, 1250)

        price = await prices.get_current_price("usdt")

        assert price.price == Decimal("1250")
        assert price.currency == "USDT"
        assert price.source == PriceSource.STARKNET_ORACLE
        assert len(fake_db.prices) == 1
        assert "oracle_address" not in fake_db.prices[0]

    async def test_price_is_cached(self, prices, mock_rpc, clock):
        quote_rate(mock_rpc, 1250)
        first = await prices.get_current_price("USDT")

        quote_rate(mock_rpc, 1600)
        clock.now = 29
        assert await prices.get_current_price("USDT") == first

        clock.now = 31
        assert (await prices.get_current_price("USDT")).price == Decimal("1600")

    async def test_refresh_bypasses_cache(self, prices, mock_rpc):
        quote_rate(mock_rpc, 1250)
        await prices.get_current_price("USDT")

        quote_rate(mock_rpc, 1600)
        assert (await prices.refresh()).price == Decimal("1600")

    async def test_invalid_rate_falls_back_to_default(self, prices, mock_rpc, fake_db):
        quote_rate(mock_rpc, 0)

        price = await prices.get_current_price("USDT")

        assert price.price == DEFAULT_PRICE
        assert price.source == PriceSource.DEFAULT
        assert fake_db.prices == []

        quote_rate(mock_rpc, 1250)
        assert (await prices.get_current_price("USDT")).price == Decimal("1250")

    async def test_database_failure_does_not_block_price(self, prices, mock_rpc, fake_db):
        fake_db.record_price = AsyncMock(side_effect=RuntimeError("db down"))
        quote_rate(mock_rpc, 1250)
        assert (await prices.get_current_price("USDT")).price == Decimal("1250")

    @pytest.mark.parametrize("currency, base", [("BTC", "ARS"), ("USDT", "USD")])
    async def test_unsupported_pair(self, prices, currency, base):
        with pytest.raises(UnsupportedCurrency):
            await prices.get_current_price(currency, base)

    async def test_convert_applies_margin(self, prices, mock_rpc):
        quote_rate(mock_rpc, 1000)

        conversion = await prices.convert_ars_to_crypto(5000, "USDT")

        assert conversion.crypto_amount == Decimal(5)
        assert conversion.crypto_amount_with_margin == Decimal("4.9")
        assert conversion.exchange_rate == Decimal(1000)

    async def test_rate_with_margin(self, prices, mock_rpc):
        quote_rate(mock_rpc, 1000)

        rate = await prices.get_exchange_rate_with_margin("USDT")
        assert rate.rate_with_margin == Decimal(1020)

        rate = await prices.get_exchange_rate_with_margin("USDT", margin_percent=5)
        assert rate.rate_with_margin == Decimal(1050)

    async def test_validate_rate(self, prices, mock_rpc):
        quote_rate(mock_rpc, 1000)

        within = await prices.validate_exchange_rate("USDT", 1040)
        assert within.is_valid
        assert within.deviation == abs(Decimal(1000) - 1040) / 1040 * 100

        outside = await prices.validate_exchange_rate("USDT", 1200)
        assert not outside.is_valid

    async def test_validate_rejects_non_positive_expectation(self, prices):
        with pytest.raises(ValueError):
            await prices.validate_exchange_rate("USDT", 0)

    async def test_history(self, prices, mock_rpc):
        quote_rate(mock_rpc, 1250)
        await prices.get_current_price("USDT")

        history = await prices.get_price_history("USDT")

        assert len(history) == 1
        assert history[0].price == Decimal("1250")

    async def test_history_without_database(self, oracle):
        assert await PriceService(oracle).get_price_history("USDT") == []
