"""
Chain event types and the PaymentGateway event schema

PaymentReceived layout (schema version 1):
    keys: [selector, payment_id, merchant_address]
    data: [payer_address, amount, token_address, timestamp]

Field order is part of the contract ABI. Any other shape is rejected with
EventDecodeError instead of being read positionally.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from starknet_py.hash.selector import get_selector_from_name

from midatopay.chain.felt import felt_hex, same_felt, to_felt
from midatopay.errors import EventDecodeError

PAYMENT_RECEIVED_EVENT = "PaymentReceived"
PAYMENT_RECEIVED_SELECTOR = felt_hex(get_selector_from_name(PAYMENT_RECEIVED_EVENT))

EXECUTION_SUCCEEDED = "SUCCEEDED"


@dataclass
class ChainEvent:
    """An event as read from the node; never persisted verbatim"""
    transaction_hash: str
    event_index: int
    from_address: str
    keys: List[str] = field(default_factory=list)
    data: List[str] = field(default_factory=list)
    block_number: Optional[int] = None

    @property
    def event_id(self) -> str:
        """Dedup identity: transaction hash + index within the transaction"""
        return f"{felt_hex(self.transaction_hash)}_{self.event_index}"

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any], transaction_hash: str, event_index: int) -> "ChainEvent":
        return cls(
            transaction_hash=transaction_hash,
            event_index=event_index,
            from_address=raw.get("from_address", "0x0"),
            keys=list(raw.get("keys", [])),
            data=list(raw.get("data", [])),
            block_number=raw.get("block_number"),
        )

    def is_from(self, contract_address: str) -> bool:
        return same_felt(self.from_address, contract_address)

    def has_key(self, value: str) -> bool:
        return any(same_felt(k, value) for k in self.keys)


@dataclass
class TransactionReceipt:
    transaction_hash: str
    execution_status: str
    finality_status: str
    events: List[ChainEvent] = field(default_factory=list)
    block_number: Optional[int] = None
    revert_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.execution_status == EXECUTION_SUCCEEDED

    @classmethod
    def from_rpc(cls, raw: Dict[str, Any]) -> "TransactionReceipt":
        tx_hash = raw.get("transaction_hash", "0x0")
        return cls(
            transaction_hash=tx_hash,
            execution_status=raw.get("execution_status", "UNKNOWN"),
            finality_status=raw.get("finality_status", "UNKNOWN"),
            events=[
                ChainEvent.from_rpc(e, tx_hash, i)
                for i, e in enumerate(raw.get("events", []))
            ],
            block_number=raw.get("block_number"),
            revert_reason=raw.get("revert_reason"),
        )


@dataclass(frozen=True)
class PaymentReceivedV1:
    """Decoded PaymentReceived event"""
    payment_id: str
    merchant_address: str
    payer_address: str
    amount: int
    token_address: str
    timestamp: int

    version = 1
    key_count = 3
    data_count = 4

    @property
    def paid_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @classmethod
    def decode_payment_id(cls, event: ChainEvent) -> str:
        """Only the payment id, for cheap lookups before fetching a receipt"""
        if len(event.keys) < 2:
            raise EventDecodeError(f"Event {event.event_id} has no payment id key")
        try:
            return felt_hex(event.keys[1])
        except ValueError as e:
            raise EventDecodeError(f"Event {event.event_id}: {e}") from e

    @classmethod
    def decode(cls, event: ChainEvent) -> "PaymentReceivedV1":
        if len(event.keys) != cls.key_count or len(event.data) != cls.data_count:
            raise EventDecodeError(
                f"Event {event.event_id} does not match PaymentReceived v{cls.version}: "
                f"{len(event.keys)} keys, {len(event.data)} data fields"
            )
        if not same_felt(event.keys[0], PAYMENT_RECEIVED_SELECTOR):
            raise EventDecodeError(f"Event {event.event_id} is not {PAYMENT_RECEIVED_EVENT}")

        try:
            payment_id, merchant_address = event.keys[1:]
            payer_address, amount, token_address, timestamp = event.data
            decoded = cls(
                payment_id=felt_hex(payment_id),
                merchant_address=felt_hex(merchant_address),
                payer_address=felt_hex(payer_address),
                amount=to_felt(amount),
                token_address=felt_hex(token_address),
                timestamp=to_felt(timestamp),
            )
        except ValueError as e:
            raise EventDecodeError(f"Event {event.event_id}: {e}") from e

        # paid_at must be representable before anything is written
        try:
            decoded.paid_at
        except (OverflowError, OSError, ValueError) as e:
            raise EventDecodeError(
                f"Event {event.event_id}: timestamp {decoded.timestamp} out of range"
            ) from e
        return decoded
