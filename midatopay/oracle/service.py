"""
On-chain ARS/USDT oracle reader
Read-only starknet_call wrappers around the oracle and USDT token contracts
"""

from decimal import Decimal, ROUND_FLOOR
from typing import List

import structlog
from starknet_py.hash.selector import get_selector_from_name

from midatopay.chain.felt import felt_hex, to_felt
from midatopay.chain.rpc import StarknetRPC
from midatopay.config import MidatoPayConfig
from midatopay.errors import MidatoPayError, OracleError
from midatopay.oracle.models import OracleQuote, OracleRate, OracleStatus, TokenBalance

logger = structlog.get_logger()

# Fixed-point scale of the oracle contract (amounts in and out)
ORACLE_SCALE = 10 ** 18
U128_MAX = 2 ** 128 - 1


def selector(name: str) -> str:
    return felt_hex(get_selector_from_name(name))


class StarknetOracle:
    def __init__(
        self,
        rpc: StarknetRPC,
        oracle_address: str,
        usdt_token_address: str,
        usdt_decimals: int = 6,
    ):
        self.rpc = rpc
        self.oracle_address = oracle_address
        self.usdt_token_address = usdt_token_address
        self.usdt_decimals = usdt_decimals

    @classmethod
    def from_config(cls, config: MidatoPayConfig, rpc: StarknetRPC) -> "StarknetOracle":
        return cls(
            rpc=rpc,
            oracle_address=config.oracle_address,
            usdt_token_address=config.usdt_token_address,
            usdt_decimals=config.token_decimals.get("USDT", 6),
        )

    async def _call(self, contract: str, function: str, calldata: List[str] = None) -> List[str]:
        result = await self.rpc.call(contract, selector(function), calldata or [])
        if not result:
            raise OracleError(f"{function} returned no data")
        return result

    async def quote_ars_to_usdt(self, amount_ars) -> OracleQuote:
        amount = Decimal(str(amount_ars))
        if amount < 0:
            raise ValueError("amount_ars must not be negative")

        scaled = int((amount * ORACLE_SCALE).to_integral_value(rounding=ROUND_FLOOR))
        if scaled > U128_MAX:
            raise ValueError("amount_ars does not fit in a u128")

        result = await self._call(self.oracle_address, "quote_ars_to_usdt", [hex(scaled)])
        usdt_amount = Decimal(to_felt(result[0])) / ORACLE_SCALE
        rate = amount / usdt_amount if usdt_amount > 0 else Decimal(0)

        logger.debug("oracle_quote", amount_ars=str(amount), usdt_amount=str(usdt_amount), rate=str(rate))
        return OracleQuote(
            amount_ars=amount,
            usdt_amount=usdt_amount,
            rate=rate,
            oracle_address=self.oracle_address,
        )

    async def get_current_rate(self) -> OracleRate:
        rate_ppm = to_felt((await self._call(self.oracle_address, "get_rate_ppm"))[0])
        scale = to_felt((await self._call(self.oracle_address, "get_scale"))[0])
        active = to_felt((await self._call(self.oracle_address, "is_active"))[0])

        if scale == 0:
            raise OracleError("Oracle scale is zero")

        return OracleRate(
            rate_ppm=rate_ppm,
            scale=scale,
            actual_rate=Decimal(rate_ppm) / Decimal(scale),
            is_active=active == 1,
        )

    async def get_usdt_balance(self, account_address: str) -> TokenBalance:
        result = await self._call(self.usdt_token_address, "balanceOf", [felt_hex(account_address)])
        # u256 comes back as (low, high)
        low = to_felt(result[0])
        high = to_felt(result[1]) if len(result) > 1 else 0
        raw = low + (high << 128)

        return TokenBalance(
            balance=Decimal(raw) / (Decimal(10) ** self.usdt_decimals),
            balance_u256=raw,
            account_address=felt_hex(account_address),
            token_address=self.usdt_token_address,
        )

    async def check_status(self) -> OracleStatus:
        """Never raises; node or contract failures are reported as status ERROR"""
        try:
            rate = await self.get_current_rate()
        except (MidatoPayError, ValueError) as e:
            logger.warning("oracle_status_check_failed", error=str(e))
            return OracleStatus(
                is_active=False,
                oracle_address=self.oracle_address,
                usdt_token_address=self.usdt_token_address,
                status="ERROR",
                error=str(e),
            )

        return OracleStatus(
            is_active=rate.is_active,
            current_rate=rate.actual_rate,
            oracle_address=self.oracle_address,
            usdt_token_address=self.usdt_token_address,
            status="ACTIVE" if rate.is_active else "INACTIVE",
        )
