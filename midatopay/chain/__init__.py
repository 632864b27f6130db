"""
Starknet integration: JSON-RPC client, gateway event schema and the chain watcher
"""

from midatopay.chain.events import (
    PAYMENT_RECEIVED_SELECTOR,
    ChainEvent,
    PaymentReceivedV1,
    TransactionReceipt,
)
from midatopay.chain.felt import felt_hex, is_valid_address, same_felt, to_felt
from midatopay.chain.rpc import StarknetRPC

__all__ = [
    "PAYMENT_RECEIVED_SELECTOR",
    "ChainEvent",
    "PaymentReceivedV1",
    "TransactionReceipt",
    "StarknetRPC",
    "felt_hex",
    "is_valid_address",
    "same_felt",
    "to_felt",
]
