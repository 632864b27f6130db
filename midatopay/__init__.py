"""
MidatoPay
Fiat-denominated QR payments settled in tokens on Starknet
"""

__version__ = "0.1.0"
