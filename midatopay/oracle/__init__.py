"""
ARS/USDT price oracle
"""

from midatopay.oracle.prices import PriceService
from midatopay.oracle.service import StarknetOracle

__all__ = ["PriceService", "StarknetOracle"]
