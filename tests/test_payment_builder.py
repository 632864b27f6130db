"""
Tests for payment request sizing and the QR payload
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from midatopay.chain.felt import to_felt
from midatopay.errors import UnsupportedCurrency
from midatopay.payments.builder import (
    PaymentRequestBuilder,
    calculate_token_amount,
    generate_payment_id,
)
from tests.factories import GATEWAY_ADDRESS, MERCHANT_ADDRESS, USDT_ADDRESS

STRK_ADDRESS = "0x04718f5a0fc34cc1af16a1cdee98ffb20c31f5cd61d6ab07201858f4287c938d"
NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def builder():
    return PaymentRequestBuilder(
        token_rates={"USDT": Decimal("1380"), "STRK": Decimal("2500")},
        token_decimals={"USDT": 6, "STRK": 18},
        token_addresses={"USDT": USDT_ADDRESS, "STRK": STRK_ADDRESS},
        gateway_address=GATEWAY_ADDRESS,
        clock=lambda: NOW,
    )


class TestTokenAmount:
    def test_usdt_reference_amount(self):
        assert calculate_token_amount(5000, 1380, 6) == 3623188

    def test_strk_eighteen_decimals_is_exact(self):
        # 1000 / 2500 = 0.4 STRK
        assert calculate_token_amount(1000, 2500, 18) == 400_000_000_000_000_000

    def test_floors_instead_of_rounding(self):
        # 1 / 3 * 10**6 = 333333.33...
        assert calculate_token_amount(1, 3, 6) == 333333
        # 2 / 3 * 10**6 = 666666.66...
        assert calculate_token_amount(2, 3, 6) == 666666

    def test_decimal_inputs(self):
        assert calculate_token_amount(Decimal("13.80"), Decimal("1380"), 6) == 10000

    def test_no_float_drift_on_large_amounts(self):
        amount = calculate_token_amount(Decimal("123456789.12"), Decimal("2500"), 18)
        assert amount == 49382715648000000000000


class TestPaymentRequestBuilder:
    def test_create_payment(self, builder):
        request = builder.create_payment(5000, "USDT", MERCHANT_ADDRESS, "Cafe")

        assert request.token_amount == 3623188
        assert request.token_address == USDT_ADDRESS
        assert request.merchant_address == MERCHANT_ADDRESS
        assert request.contract_address == GATEWAY_ADDRESS
        assert request.fiat_amount == Decimal("5000")
        assert request.fiat_currency == "ARS"
        assert request.concept == "Cafe"
        assert request.order_id is None

    def test_expires_thirty_minutes_after_creation(self, builder):
        request = builder.create_payment(100, "USDT", MERCHANT_ADDRESS, "Cafe")

        assert request.created_at == NOW
        assert request.expires_at - request.created_at == timedelta(minutes=30)
        assert not request.is_expired(NOW + timedelta(minutes=29))
        assert request.is_expired(NOW + timedelta(minutes=31))

    def test_currency_is_case_insensitive(self, builder):
        request = builder.create_payment(2500, "strk", MERCHANT_ADDRESS, "Cafe")
        assert request.currency == "STRK"
        assert request.token_amount == 10 ** 18

    def test_unsupported_currency(self, builder):
        with pytest.raises(UnsupportedCurrency) as exc_info:
            builder.create_payment(100, "DOGE", MERCHANT_ADDRESS, "Cafe")
        assert exc_info.value.currency == "DOGE"

    @pytest.mark.parametrize("amount", [0, -1, "NaN", "Infinity"])
    def test_rejects_non_positive_or_non_finite_amounts(self, builder, amount):
        with pytest.raises(ValueError):
            builder.create_payment(amount, "USDT", MERCHANT_ADDRESS, "Cafe")

    def test_rejects_invalid_merchant_address(self, builder):
        with pytest.raises(ValueError):
            builder.create_payment(100, "USDT", "0x1,0x2", "Cafe")
        with pytest.raises(ValueError):
            builder.create_payment(100, "USDT", hex(2 ** 252), "Cafe")

    def test_payment_ids_are_fresh_felts(self, builder):
        ids = {builder.create_payment(100, "USDT", MERCHANT_ADDRESS, "Cafe").payment_id for _ in range(20)}
        assert len(ids) == 20
        assert all(0 < to_felt(i) < 2 ** 251 for i in ids)

    def test_generate_payment_id_is_hex(self):
        assert generate_payment_id().startswith("0x")

    def test_from_config(self, test_config):
        builder = PaymentRequestBuilder.from_config(test_config)
        assert builder.supported_currencies == ["STRK", "USDT"]
        assert builder.quote_token_amount(5000, "USDT") == 3623188


class TestQRPayload:
    def test_payload_shape(self, builder):
        request = builder.create_payment(5000, "USDT", MERCHANT_ADDRESS, "Cafe", order_id="ord-1")
        payload = request.to_qr_payload()

        assert payload == {
            "type": "starknet_payment",
            "payment_id": request.payment_id,
            "merchant_address": MERCHANT_ADDRESS,
            "token_address": USDT_ADDRESS,
            "amount": "3623188",
            "amount_ars": 5000,
            "currency": "USDT",
            "concept": "Cafe",
            "order_id": "ord-1",
            "network": "starknet-sepolia",
            "contract_address": GATEWAY_ADDRESS,
        }

    def test_order_id_omitted_when_unset(self, builder):
        payload = builder.create_payment(5000, "USDT", MERCHANT_ADDRESS, "Cafe").to_qr_payload()
        assert "order_id" not in payload

    def test_fractional_fiat_amount(self, builder):
        payload = builder.create_payment(Decimal("10.5"), "USDT", MERCHANT_ADDRESS, "Cafe").to_qr_payload()
        assert payload["amount_ars"] == 10.5

    def test_request_is_immutable(self, builder):
        request = builder.create_payment(100, "USDT", MERCHANT_ADDRESS, "Cafe")
        with pytest.raises(Exception):
            request.token_amount = 1
